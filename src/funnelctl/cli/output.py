"""Tunnel lifecycle output for the open command.

Two renderings of the same events:

- JSON mode (--json): one compact JSON object per line on stdout, tagged by
  "event" and carrying the schema version:

    {"event":"started","version":1,"url":"https://...","local_target":"http://127.0.0.1:8081",...}
    {"event":"stopped","version":1,"reason":"user_interrupt","stopped_at":"...","duration_seconds":42}
    {"event":"error","version":1,"code":13,"message":"Configuration conflict","suggestion":"..."}

- Human mode: the URL and a short tree on stdout, stop notices on stderr.
"""

from __future__ import annotations

__all__ = [
    "ErrorEvent",
    "StartedEvent",
    "StopReason",
    "StoppedEvent",
    "emit_event",
    "error_event",
    "exit_with_error",
    "format_duration",
    "print_started",
    "print_stopped",
]

import sys
from datetime import datetime, timedelta
from enum import Enum
from typing import Literal, NoReturn

import click
from pydantic import BaseModel

from funnelctl.constants import EVENT_SCHEMA_VERSION
from funnelctl.exceptions import FunnelError
from funnelctl.localapi.protocol import encode_ndjson


class StopReason(str, Enum):
    USER_INTERRUPT = "user_interrupt"
    TTL_EXPIRED = "ttl_expired"
    ERROR = "error"


_STOP_TEXT = {
    StopReason.USER_INTERRUPT: "Stopped by user",
    StopReason.TTL_EXPIRED: "TTL expired",
    StopReason.ERROR: "Stopped due to error",
}


class StartedEvent(BaseModel):
    event: Literal["started"] = "started"
    version: int = EVENT_SCHEMA_VERSION
    url: str
    local_target: str
    path: str
    https_port: int
    started_at: datetime
    expires_at: datetime | None = None


class StoppedEvent(BaseModel):
    event: Literal["stopped"] = "stopped"
    version: int = EVENT_SCHEMA_VERSION
    reason: StopReason
    stopped_at: datetime
    duration_seconds: int | None = None


class ErrorEvent(BaseModel):
    event: Literal["error"] = "error"
    version: int = EVENT_SCHEMA_VERSION
    code: int
    message: str
    suggestion: str | None = None


def error_event(error: FunnelError) -> ErrorEvent:
    """Machine-readable form of a FunnelError (code is the exit code)."""
    return ErrorEvent(code=error.exit_code, message=str(error), suggestion=error.remedy)


def emit_event(event: BaseModel) -> None:
    """Write one event as a JSON line to stdout and flush."""
    stream = click.get_binary_stream("stdout")
    stream.write(encode_ndjson(event.model_dump(mode="json")))
    stream.flush()


def format_duration(duration: timedelta) -> str:
    """Compact duration like "1h 30m" or "45s"."""
    total = int(duration.total_seconds())
    if total <= 0:
        return "0s"
    parts = []
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60), ("s", 1)):
        value, total = divmod(total, size)
        if value:
            parts.append(f"{value}{unit}")
    return " ".join(parts)


def print_started(url: str, local_target: str, expires_at: datetime | None) -> None:
    branch = click.style("├─", dim=True)
    last_branch = click.style("└─", dim=True)
    expiry_text = (
        expires_at.strftime("%Y-%m-%d %H:%M:%S UTC")
        if expires_at is not None
        else "never (Ctrl-C to stop)"
    )

    click.echo(url)
    click.echo(f"{branch} {click.style('Local:', bold=True)} {local_target}")
    click.echo(f"{branch} {click.style('Expires:', bold=True)} {expiry_text}")
    click.echo(f"{last_branch} {click.style('Press Ctrl-C to stop', bold=True)}")
    sys.stdout.flush()


def print_stopped(reason: StopReason, duration_seconds: int | None) -> None:
    duration_text = f" (ran for {duration_seconds}s)" if duration_seconds is not None else ""
    click.echo(f"{_STOP_TEXT[reason]}{duration_text}", err=True)


def exit_with_error(error: FunnelError, as_json: bool = False) -> NoReturn:
    """Report error and exit with its exit code.

    JSON mode emits an error event on stdout; otherwise the Error/Cause/Fix
    block goes to stderr.
    """
    if as_json:
        emit_event(error_event(error))
    else:
        click.echo(error.format_detailed(), err=True)
    sys.exit(error.exit_code)
