"""Logger for funnelctl operational events.

Provides a singleton logger with structured dict messages:

    logger.info({"event": "serve_config_applied", "message": "...", "attempt": 1})

Destinations:
- Console (stderr): level chosen by -v count (ERROR, INFO, DEBUG) or the
  FUNNELCTL_LOG environment variable. Rendered as "LEVEL: message".
- File (optional, --log-file): every record that passes the logger level,
  as JSON lines with ISO 8601 UTC timestamps.

Machine-readable output (--json) goes to stdout, so logging never
interferes with it.
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "ISO8601Formatter",
    "configure_logging",
    "get_logger",
    "level_for_verbosity",
]

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from funnelctl.constants import APP_NAME, ENV_LOG_LEVEL


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Extracts 'message' or 'event' field from dict messages for cleaner stderr output.
    """

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname}: {msg}"
        return f"{record.levelname}: {record.getMessage()}"


class ISO8601Formatter(logging.Formatter):
    """JSON lines formatter with ISO 8601 timestamps (UTC).

    Format: {"time": "2025-12-04T10:48:37.123Z", "level": "INFO", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )

        if isinstance(record.msg, dict):
            log_data = record.msg
        else:
            log_data = {"message": record.getMessage()}

        log_entry = {"time": timestamp, "level": record.levelname, **log_data}
        return json.dumps(log_entry, default=str)


_logger: logging.Logger | None = None


def get_logger() -> logging.Logger:
    """Get the singleton funnelctl logger.

    Created on first call with a stderr handler at ERROR. Call
    configure_logging() once the CLI knows the requested verbosity.

    Returns:
        logging.Logger: The shared logger.
    """
    global _logger

    if _logger is not None:
        return _logger

    _logger = logging.getLogger(APP_NAME)
    _logger.setLevel(logging.ERROR)
    _logger.propagate = False

    for handler in _logger.handlers:
        handler.close()
    _logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(ConsoleFormatter())
    _logger.addHandler(stderr_handler)

    return _logger


def level_for_verbosity(verbose: int) -> int:
    """Map a -v count to a logging level.

    FUNNELCTL_LOG (a level name such as "debug") takes precedence when set
    to a recognised value.

    Args:
        verbose: Number of -v flags given.

    Returns:
        A logging level constant.
    """
    override = os.environ.get(ENV_LOG_LEVEL, "").strip().upper()
    if override:
        level = logging.getLevelName(override)
        if isinstance(level, int):
            return level

    if verbose <= 0:
        return logging.ERROR
    if verbose == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(verbose: int = 0, log_file: Path | None = None) -> logging.Logger:
    """Apply verbosity and optional file output to the shared logger.

    Safe to call more than once; previously added file handlers are replaced.

    Args:
        verbose: Number of -v flags given.
        log_file: Optional JSONL destination.

    Returns:
        logging.Logger: The configured logger.
    """
    logger = get_logger()
    level = level_for_verbosity(verbose)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(ISO8601Formatter())
        logger.addHandler(file_handler)

    return logger
