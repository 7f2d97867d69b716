"""Single-instance process lock.

Only one funnelctl process may modify the serve config at a time. The lock
is an fcntl advisory lock on <runtime dir>/funnelctl.lock; the holder writes
its PID into the file so other instances can report who holds it and
reclaim the lock if that process has died.

Usage:
    with ProcessLock():
        ...  # apply, wait, tear down
"""

from __future__ import annotations

__all__ = [
    "ProcessLock",
    "pid_is_alive",
]

import errno
import fcntl
import os
from pathlib import Path
from types import TracebackType
from typing import IO

from funnelctl.constants import LOCK_FILENAME
from funnelctl.exceptions import ConflictError, FunnelError
from funnelctl.utils.logging import get_logger
from funnelctl.utils.paths import runtime_dir

_logger = get_logger()


def pid_is_alive(pid: int) -> bool:
    """True if a process with this PID exists (EPERM counts as alive)."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except OSError as e:
        return e.errno == errno.EPERM
    return True


class ProcessLock:
    """Exclusive, non-blocking lock held for the life of a tunnel.

    Args:
        path: Lock file location. Defaults to <runtime dir>/funnelctl.lock.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or runtime_dir() / LOCK_FILENAME
        self._file: IO[str] | None = None

    @property
    def held(self) -> bool:
        return self._file is not None

    def acquire(self) -> None:
        """Take the lock or fail fast.

        Raises:
            ConflictError: Another live funnelctl process holds the lock.
            FunnelError: Lock file could not be opened or written.
        """
        if self._file is not None:
            return
        try:
            lock_file = open(self.path, "a+", encoding="utf-8")
        except OSError as e:
            raise FunnelError(f"Failed to open lock file {self.path}: {e}") from e

        try:
            if not self._try_lock(lock_file):
                pid = self._read_pid(lock_file)
                if pid is None:
                    raise ConflictError("Another funnelctl instance is running")
                if pid_is_alive(pid) or not self._try_lock(lock_file):
                    raise ConflictError(f"Another funnelctl instance is running (PID {pid})")
                _logger.info(
                    {
                        "event": "stale_lock_reclaimed",
                        "message": f"Reclaimed lock held by dead process {pid}",
                        "pid": pid,
                    }
                )
            self._write_pid(lock_file)
        except BaseException:
            lock_file.close()
            raise

        self._file = lock_file

    def release(self) -> None:
        if self._file is None:
            return
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        except OSError:
            pass
        self._file.close()
        self._file = None

    def __enter__(self) -> ProcessLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    @staticmethod
    def _try_lock(lock_file: IO[str]) -> bool:
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    @staticmethod
    def _read_pid(lock_file: IO[str]) -> int | None:
        lock_file.seek(0)
        contents = lock_file.read().strip()
        return int(contents) if contents.isdigit() else None

    def _write_pid(self, lock_file: IO[str]) -> None:
        try:
            lock_file.seek(0)
            lock_file.truncate()
            lock_file.write(str(os.getpid()))
            lock_file.flush()
        except OSError as e:
            raise FunnelError(f"Failed to write lock file {self.path}: {e}") from e
