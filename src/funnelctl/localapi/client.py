"""Protocol client for the tailscaled LocalAPI.

Wraps a LocalAPITransport with the four calls funnelctl needs:

- get_status(): node identity and capabilities
- get_serve_config(): current serve config plus its ETag
- set_serve_config(): write the serve config, optionally guarded by If-Match
- watch_session(): open watch-ipn-bus and obtain a session id

Every response other than 200 becomes LocalAPIHTTPError. Empty bodies
decode as JSON null.
"""

from __future__ import annotations

__all__ = [
    "DaemonStatus",
    "LocalAPIClient",
    "ServeConfigResponse",
    "SessionWatch",
    "parse_status",
]

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import ValidationError

from funnelctl.constants import (
    EMPTY_BODY_PLACEHOLDER,
    SERVE_CONFIG_ENDPOINT,
    STATUS_ENDPOINT,
    WATCH_INITIAL_STATE_MASK,
    WATCH_IPN_BUS_ENDPOINT,
)
from funnelctl.core.models import FrozenModel, ServeConfig
from funnelctl.localapi.errors import (
    InvalidHeaderError,
    LocalAPIConnectionError,
    LocalAPIError,
    LocalAPIHTTPError,
    MalformedResponseError,
    MissingSessionIDError,
)
from funnelctl.localapi.protocol import decode_ndjson, extract_session_id, iter_lines
from funnelctl.localapi.transport import LocalAPITransport
from funnelctl.utils.logging import get_logger

_logger = get_logger()


class DaemonStatus(FrozenModel):
    """Fields of /localapi/v0/status that funnelctl cares about.

    None means the daemon did not report the value.
    """

    version: str | None = None
    dns_name: str | None = None
    https_enabled: bool | None = None
    funnel_enabled: bool | None = None


class ServeConfigResponse(FrozenModel):
    """Serve config together with the ETag needed to write it back."""

    etag: str | None
    config: ServeConfig


def _lookup(value: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _parse_dns_name(status: Any) -> str | None:
    dns_name = _str_or_none(_lookup(status, "Self", "DNSName"))
    if dns_name is not None:
        return dns_name.removesuffix(".")

    host = _str_or_none(_lookup(status, "Self", "HostName"))
    suffix = (
        _str_or_none(_lookup(status, "CurrentTailnet", "MagicDNSSuffix"))
        or _str_or_none(_lookup(status, "MagicDNSSuffix"))
        or _str_or_none(_lookup(status, "CurrentTailnet", "Name"))
    )
    if host is None or suffix is None:
        return None
    return f"{host}.{suffix}"


def _parse_https_enabled(status: Any) -> bool | None:
    for domains in (_lookup(status, "Self", "CertDomains"), _lookup(status, "CertDomains")):
        if isinstance(domains, list):
            return bool(domains)
    https = _lookup(status, "Self", "HTTPS")
    return https if isinstance(https, bool) else None


def _parse_funnel_enabled(status: Any) -> bool | None:
    enabled = _lookup(status, "Funnel", "Enabled")
    if isinstance(enabled, bool):
        return enabled

    capabilities = _lookup(status, "Self", "Capabilities")
    if isinstance(capabilities, list):
        return any(isinstance(cap, str) and cap.lower() == "funnel" for cap in capabilities)
    if isinstance(capabilities, dict):
        funnel = capabilities.get("Funnel")
        if isinstance(funnel, bool):
            return funnel
    return None


def parse_status(status: Any) -> DaemonStatus:
    """Extract DaemonStatus from a decoded status body.

    Different tailscaled releases report the same facts in different places;
    each field checks the known locations in order. Unknown fields are
    ignored.
    """
    return DaemonStatus(
        version=_str_or_none(_lookup(status, "Version")),
        dns_name=_parse_dns_name(status),
        https_enabled=_parse_https_enabled(status),
        funnel_enabled=_parse_funnel_enabled(status),
    )


class SessionWatch:
    """Open watch-ipn-bus stream that owns a LocalAPI session.

    tailscaled ties Foreground serve entries to this connection; closing it
    tells the daemon the session is over. After the session id has been
    read, a background task keeps draining the stream so the connection stays
    healthy.

    close() cancels the drain task and is safe to call any number of times,
    including after the stream has ended. A task cancelled before its first
    step never reaches its cleanup, so the response is also closed from the
    task's done callback. aclose() additionally waits until the connection
    is released. The handle also cancels itself when garbage collected.
    """

    def __init__(
        self,
        session_id: str,
        response: httpx.Response,
        lines: AsyncIterator[bytes],
    ) -> None:
        self.session_id = session_id
        self._response = response
        self._release: asyncio.Task[None] | None = None
        self._task: asyncio.Task[None] = asyncio.create_task(self._drain(lines))
        self._task.add_done_callback(self._on_drain_done)

    @property
    def closed(self) -> bool:
        return self._task.done()

    async def _drain(self, lines: AsyncIterator[bytes]) -> None:
        try:
            async for _ in lines:
                pass
            _logger.debug(
                {"event": "watch_stream_ended", "message": "watch-ipn-bus stream ended"}
            )
        except (LocalAPIError, httpx.HTTPError) as e:
            _logger.debug(
                {
                    "event": "watch_stream_error",
                    "message": f"watch-ipn-bus stream ended with error: {e}",
                }
            )
        finally:
            await self._response.aclose()

    def _on_drain_done(self, task: asyncio.Task[None]) -> None:
        if not self._response.is_closed and not task.get_loop().is_closed():
            self._release = task.get_loop().create_task(self._response.aclose())

    def close(self) -> None:
        """Stop draining and drop the connection (idempotent)."""
        if not self._task.done() and not self._task.get_loop().is_closed():
            self._task.cancel()

    async def aclose(self) -> None:
        """Close and wait until the connection is released (idempotent)."""
        self.close()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        await self._response.aclose()

    async def __aenter__(self) -> SessionWatch:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __del__(self) -> None:
        task = getattr(self, "_task", None)
        if task is not None and not task.done() and not task.get_loop().is_closed():
            task.cancel()


class LocalAPIClient:
    """Typed calls against a LocalAPI transport."""

    def __init__(self, transport: LocalAPITransport) -> None:
        self.transport = transport

    async def get_status(self) -> DaemonStatus:
        """Fetch and parse /localapi/v0/status.

        Raises:
            LocalAPIError: Transport, status or JSON failure.
        """
        response = await self.transport.send("GET", STATUS_ENDPOINT)
        await _ensure_ok(response, "GET", STATUS_ENDPOINT)
        return parse_status(_decode_json(response))

    async def get_serve_config(self) -> ServeConfigResponse:
        """Fetch the serve config and its ETag.

        A missing ETag is reported as None; callers that need optimistic
        concurrency must treat that as an unsupported daemon.

        Raises:
            LocalAPIError: Transport, status or JSON failure.
        """
        response = await self.transport.send("GET", SERVE_CONFIG_ENDPOINT)
        await _ensure_ok(response, "GET", SERVE_CONFIG_ENDPOINT)
        etag = response.headers.get("etag")
        body = _decode_json(response)
        try:
            config = ServeConfig.from_wire(body)
        except ValidationError as e:
            raise MalformedResponseError(f"serve config has unexpected shape: {e}") from e
        return ServeConfigResponse(etag=etag, config=config)

    async def set_serve_config(self, config: ServeConfig, etag: str | None = None) -> None:
        """Write the serve config.

        Args:
            config: Complete document to store.
            etag: When given, sent as If-Match so the write fails with 412
                if the document changed since it was read.

        Raises:
            InvalidHeaderError: ETag cannot be sent as a header.
            LocalAPIError: Transport or status failure.
        """
        headers = {"Content-Type": "application/json"}
        if etag is not None:
            if not etag.isascii() or "\n" in etag or "\r" in etag:
                raise InvalidHeaderError("if-match")
            headers["If-Match"] = etag

        body = json.dumps(config.to_wire(), separators=(",", ":")).encode("utf-8")
        response = await self.transport.send(
            "POST", SERVE_CONFIG_ENDPOINT, headers=headers, body=body
        )
        await _ensure_ok(response, "POST", SERVE_CONFIG_ENDPOINT)

    async def watch_session(self) -> SessionWatch:
        """Open watch-ipn-bus (initial state only) and wait for a session id.

        Returns:
            SessionWatch owning the open stream.

        Raises:
            MissingSessionIDError: Stream ended before a session id arrived.
            MalformedResponseError: A line was not JSON or exceeded the cap.
            LocalAPIError: Transport or status failure.
        """
        path = f"{WATCH_IPN_BUS_ENDPOINT}?mask={WATCH_INITIAL_STATE_MASK}"
        response = await self.transport.send("GET", path, stream=True)

        session_id: str | None = None
        try:
            await _ensure_ok(response, "GET", WATCH_IPN_BUS_ENDPOINT)
            lines = iter_lines(response.aiter_bytes())
            async for line in lines:
                event = decode_ndjson(line)
                if event is None:
                    continue
                session_id = extract_session_id(event)
                if session_id is not None:
                    break
        except httpx.HTTPError as e:
            await response.aclose()
            raise LocalAPIConnectionError(f"watch-ipn-bus stream failed: {e}") from e
        except BaseException:
            await response.aclose()
            raise

        if session_id is None:
            await response.aclose()
            raise MissingSessionIDError()

        _logger.info(
            {
                "event": "session_opened",
                "message": f"LocalAPI session {session_id} opened",
                "session_id": session_id,
            }
        )
        return SessionWatch(session_id, response, lines)

    async def aclose(self) -> None:
        await self.transport.aclose()


async def _ensure_ok(response: httpx.Response, method: str, path: str) -> None:
    if response.status_code == httpx.codes.OK:
        return
    try:
        raw = await response.aread()
    except httpx.HTTPError:
        raw = b""
    finally:
        await response.aclose()
    body = raw.decode("utf-8", errors="replace") or EMPTY_BODY_PLACEHOLDER
    raise LocalAPIHTTPError(response.status_code, method, path, body)


def _decode_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return json.loads(response.content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedResponseError(f"invalid JSON from LocalAPI: {e}") from e
