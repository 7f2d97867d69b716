"""Errors raised by the LocalAPI transport and protocol client.

These describe what went wrong on the wire. They never reach the user
directly: the backend translates them into funnelctl.exceptions.
"""

from __future__ import annotations

__all__ = [
    "EmptyPasswordFileError",
    "InvalidHeaderError",
    "LineTooLongError",
    "LocalAPIConnectionError",
    "LocalAPIError",
    "LocalAPIHTTPError",
    "MalformedResponseError",
    "MissingSessionIDError",
    "PasswordFileError",
    "PasswordPermissionsError",
    "PasswordReadError",
]

from pathlib import Path


class LocalAPIError(Exception):
    """Base class for LocalAPI protocol failures."""


class LocalAPIConnectionError(LocalAPIError):
    """Could not connect to, or lost the connection with, tailscaled."""


class MalformedResponseError(LocalAPIError):
    """Response body was not the JSON we expected."""


class LineTooLongError(MalformedResponseError):
    """A watch stream line exceeded the per-line cap."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"watch-ipn-bus line exceeded {limit} bytes")
        self.limit = limit


class InvalidHeaderError(LocalAPIError):
    """A header value could not be built or decoded."""

    def __init__(self, name: str) -> None:
        super().__init__(f"invalid header value for {name}")
        self.name = name


class LocalAPIHTTPError(LocalAPIError):
    """LocalAPI answered with an unexpected status code.

    Attributes:
        status_code: HTTP status returned by tailscaled.
        method: Request method.
        path: Request path (without query string).
        body: Response body text, or a placeholder when empty.
    """

    def __init__(self, status_code: int, method: str, path: str, body: str) -> None:
        super().__init__(f"unexpected status {status_code} for {method} {path}: {body}")
        self.status_code = status_code
        self.method = method
        self.path = path
        self.body = body


class MissingSessionIDError(LocalAPIError):
    """The watch stream ended before announcing a session id."""

    def __init__(self) -> None:
        super().__init__("watch-ipn-bus did not provide a session id")


class PasswordFileError(LocalAPIError):
    """Base class for LocalAPI password file problems."""

    def __init__(self, message: str, path: Path) -> None:
        super().__init__(message)
        self.path = path


class PasswordPermissionsError(PasswordFileError):
    """Password file is readable by someone other than its owner."""

    def __init__(self, path: Path, mode: int) -> None:
        super().__init__(
            f"LocalAPI password file {path} must have 0600 permissions (got {mode:03o})",
            path,
        )
        self.mode = mode


class PasswordReadError(PasswordFileError):
    """Password file could not be read."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"LocalAPI password file {path} could not be read: {reason}", path)


class EmptyPasswordFileError(PasswordFileError):
    """Password file is empty once trailing newlines are removed."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"LocalAPI password file {path} is empty", path)
