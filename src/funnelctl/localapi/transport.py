"""HTTP transports for the tailscaled LocalAPI.

Two channels are supported:

- UnixSocketTransport: talks HTTP over tailscaled's Unix socket. The socket's
  file permissions are the authentication; requests only carry the virtual
  host name tailscaled expects.
- TcpAuthTransport: talks HTTP to a loopback port (macOS App Store builds,
  containers). Every request carries basic auth with an empty user and the
  secret from a password file, plus the Sec-Tailscale capability header.
  A 401 triggers exactly one re-read of the password file and one retry.

Both return raw httpx responses; status interpretation belongs to the
protocol client.
"""

from __future__ import annotations

__all__ = [
    "CredentialCell",
    "LocalAPITransport",
    "TcpAuthTransport",
    "UnixSocketTransport",
    "read_password_file",
]

import os
import threading
from pathlib import Path

import httpx

from funnelctl.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    LOCALAPI_CAPABILITY_HEADER,
    LOCALAPI_CAPABILITY_VALUE,
    LOCALAPI_HOST,
    LOCALAPI_TCP_HOST,
)
from funnelctl.localapi.errors import (
    EmptyPasswordFileError,
    LocalAPIConnectionError,
    PasswordPermissionsError,
    PasswordReadError,
)
from funnelctl.utils.logging import get_logger

_logger = get_logger()

# Streaming requests stay open for the life of a tunnel
_STREAM_TIMEOUT = httpx.Timeout(DEFAULT_HTTP_TIMEOUT_SECONDS, read=None)


def read_password_file(path: Path) -> str:
    """Read the LocalAPI secret from a password file.

    The file must be mode 0600 (checked on POSIX only). Trailing CR/LF
    characters are stripped; anything else is part of the secret.

    Args:
        path: Password file location.

    Returns:
        The secret.

    Raises:
        PasswordPermissionsError: Mode is not exactly 0600.
        PasswordReadError: File is missing or unreadable.
        EmptyPasswordFileError: Nothing left after trimming.
    """
    if os.name == "posix":
        try:
            mode = path.stat().st_mode & 0o777
        except OSError as e:
            raise PasswordReadError(path, e.strerror or str(e)) from e
        if mode != 0o600:
            raise PasswordPermissionsError(path, mode)

    try:
        contents = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise PasswordReadError(path, str(e)) from e

    password = contents.rstrip("\r\n")
    if not password:
        raise EmptyPasswordFileError(path)
    return password


class CredentialCell:
    """Lock-guarded holder for the current LocalAPI secret.

    Readers take a snapshot; the 401 retry path is the only writer.
    """

    def __init__(self, value: str) -> None:
        self._lock = threading.Lock()
        self._value = value

    def get(self) -> str:
        with self._lock:
            return self._value

    def set(self, value: str) -> None:
        with self._lock:
            self._value = value


class LocalAPITransport:
    """Base class holding the pooled httpx client.

    Subclasses choose the connection and decorate requests. Use as an async
    context manager, or call aclose() when done.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @property
    def description(self) -> str:
        """Human-readable endpoint description for logs and doctor output."""
        raise NotImplementedError

    async def send(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        stream: bool = False,
    ) -> httpx.Response:
        """Send one request to LocalAPI.

        Args:
            method: HTTP method.
            path: Request path, with or without leading slash, may include a query.
            headers: Extra request headers.
            body: Raw request body.
            stream: Leave the body unread so the caller can iterate it.
                The caller must close the response.

        Returns:
            httpx.Response with any status code.

        Raises:
            LocalAPIConnectionError: Connection could not be established or broke.
        """
        return await self._send_once(method, _normalize_path(path), headers, body, stream)

    async def _send_once(
        self,
        method: str,
        path: str,
        headers: dict[str, str] | None,
        body: bytes | None,
        stream: bool,
        auth: httpx.Auth | None = None,
    ) -> httpx.Response:
        request = self._client.build_request(
            method,
            path,
            headers=headers,
            content=body,
            timeout=_STREAM_TIMEOUT if stream else httpx.USE_CLIENT_DEFAULT,
        )
        _logger.debug(
            {
                "event": "localapi_request",
                "message": f"LocalAPI request {method} {path} ({self.description})",
                "method": method,
                "path": path,
            }
        )
        try:
            if auth is not None:
                return await self._client.send(request, stream=stream, auth=auth)
            return await self._client.send(request, stream=stream)
        except httpx.TransportError as e:
            raise LocalAPIConnectionError(f"{method} {path} via {self.description}: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "LocalAPITransport":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class UnixSocketTransport(LocalAPITransport):
    """LocalAPI over tailscaled's Unix domain socket."""

    def __init__(
        self,
        socket_path: Path,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Create the transport.

        Args:
            socket_path: Path of tailscaled.sock.
            timeout: Default request timeout in seconds.
            transport: Override the httpx transport (tests use httpx.MockTransport).
        """
        self.socket_path = socket_path
        # base_url host becomes the Host header tailscaled checks
        super().__init__(
            httpx.AsyncClient(
                transport=transport or httpx.AsyncHTTPTransport(uds=str(socket_path)),
                base_url=f"http://{LOCALAPI_HOST}",
                timeout=timeout,
            )
        )

    @property
    def description(self) -> str:
        return f"unix socket {self.socket_path}"


class TcpAuthTransport(LocalAPITransport):
    """LocalAPI over loopback TCP, authenticated from a password file."""

    def __init__(
        self,
        port: int,
        password_file: Path,
        *,
        host: str = LOCALAPI_TCP_HOST,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Create the transport, reading the password file once up front.

        Args:
            port: LocalAPI TCP port.
            password_file: File holding the LocalAPI secret (mode 0600).
            host: Loopback address to connect to.
            timeout: Default request timeout in seconds.
            transport: Override the httpx transport (tests use httpx.MockTransport).

        Raises:
            PasswordFileError: Password file is unusable.
        """
        self.host = host
        self.port = port
        self.password_file = password_file
        self._credential = CredentialCell(read_password_file(password_file))
        super().__init__(
            httpx.AsyncClient(
                transport=transport or httpx.AsyncHTTPTransport(),
                base_url=f"http://{host}:{port}",
                headers={LOCALAPI_CAPABILITY_HEADER: LOCALAPI_CAPABILITY_VALUE},
                timeout=timeout,
            )
        )

    @property
    def description(self) -> str:
        return f"tcp {self.host}:{self.port}"

    async def send(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        stream: bool = False,
    ) -> httpx.Response:
        path = _normalize_path(path)
        response = await self._send_once(
            method, path, headers, body, stream, auth=self._auth()
        )
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return response

        await response.aclose()
        _logger.debug(
            {
                "event": "localapi_auth_rejected",
                "message": f"LocalAPI auth rejected, re-reading {self.password_file}",
                "path": str(self.password_file),
            }
        )
        self._credential.set(read_password_file(self.password_file))
        # Second 401 goes back to the caller as-is
        return await self._send_once(method, path, headers, body, stream, auth=self._auth())

    def _auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth("", self._credential.get())


def _normalize_path(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"
