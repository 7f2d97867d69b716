"""Per-user directories for funnelctl.

Resolved with platformdirs and created owner-only (0o700) on first use.

Platform-specific runtime directory:
- Linux: $XDG_RUNTIME_DIR/funnelctl (falls back to the state directory)
- macOS: ~/Library/Caches/TemporaryItems/funnelctl
"""

from __future__ import annotations

__all__ = [
    "ensure_dir",
    "runtime_dir",
    "state_dir",
]

import os
import sys
from pathlib import Path

from platformdirs import user_state_dir

from funnelctl.constants import APP_NAME, RUNTIME_DIR
from funnelctl.exceptions import FunnelError


def ensure_dir(path: Path) -> Path:
    """Create path (and parents) with 0o700 if it does not exist.

    Raises:
        FunnelError: Directory could not be created.
    """
    if path.exists():
        return path
    try:
        path.mkdir(parents=True, exist_ok=True)
        if sys.platform != "win32":
            path.chmod(0o700)
    except OSError as e:
        raise FunnelError(f"Failed to create {path}: {e}") from e
    return path


def state_dir() -> Path:
    return ensure_dir(Path(user_state_dir(APP_NAME)))


def runtime_dir() -> Path:
    """Directory for the process lock.

    Uses the platform runtime directory when XDG_RUNTIME_DIR is set (or on
    non-Linux platforms), otherwise the state directory, since a synthesized
    /run/user path may not exist.
    """
    if sys.platform.startswith("linux") and not os.environ.get("XDG_RUNTIME_DIR"):
        return state_dir()
    return ensure_dir(RUNTIME_DIR)
