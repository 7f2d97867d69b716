"""Shared fixtures for funnelctl tests.

Provides an in-memory stand-in for tailscaled's LocalAPI, served through
httpx.MockTransport, so transport, client and backend tests exercise real
HTTP request/response objects without a daemon.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import httpx
import pytest

from funnelctl.constants import SERVE_CONFIG_ENDPOINT, STATUS_ENDPOINT, WATCH_IPN_BUS_ENDPOINT
from funnelctl.localapi.transport import UnixSocketTransport

DNS_NAME = "node.tailnet.ts.net"
HOST_PORT = f"{DNS_NAME}:443"
SESSION_ID = "sess-1"


def healthy_status() -> dict[str, Any]:
    """Status body of an up-to-date node with HTTPS and Funnel enabled."""
    return {
        "Version": "1.76.1-t1234abcd",
        "Self": {
            "DNSName": f"{DNS_NAME}.",
            "HostName": "node",
            "CertDomains": [DNS_NAME],
            "Capabilities": ["funnel"],
        },
        "CurrentTailnet": {"Name": "tailnet", "MagicDNSSuffix": "tailnet.ts.net"},
    }


class FakeTailscaled:
    """Scriptable LocalAPI.

    Attributes:
        status: Body returned by GET status.
        serve_config: Body returned by GET serve-config (None means "null").
        etag: ETag header for serve-config reads (None omits it).
        post_statuses: Status codes for successive POSTs; 200 once exhausted.
        watch_lines: Lines streamed by watch-ipn-bus.
        hold_watch_open: Keep the watch stream open after the last line.
        overrides: (method, path) -> status code returned instead.
        requests: Every request received, in order.
        posted: Decoded bodies of every POST.
        watch_responses: Responses handed out for watch-ipn-bus.
    """

    def __init__(self) -> None:
        self.status: dict[str, Any] = healthy_status()
        self.serve_config: dict[str, Any] | None = {}
        self.etag: str | None = '"etag-1"'
        self.post_statuses: list[int] = []
        self.watch_lines: list[bytes] = [json.dumps({"SessionID": SESSION_ID}).encode()]
        self.hold_watch_open = True
        self.overrides: dict[tuple[str, str], int] = {}
        self.requests: list[httpx.Request] = []
        self.posted: list[dict[str, Any]] = []
        self.watch_responses: list[httpx.Response] = []

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)

        if key in self.overrides:
            return httpx.Response(self.overrides[key], text="denied by test")

        if key == ("GET", STATUS_ENDPOINT):
            return httpx.Response(200, json=self.status)

        if key == ("GET", SERVE_CONFIG_ENDPOINT):
            headers = {"ETag": self.etag} if self.etag is not None else {}
            return httpx.Response(200, json=self.serve_config, headers=headers)

        if key == ("POST", SERVE_CONFIG_ENDPOINT):
            self.posted.append(json.loads(request.content))
            status = self.post_statuses.pop(0) if self.post_statuses else 200
            return httpx.Response(status)

        if key == ("GET", WATCH_IPN_BUS_ENDPOINT):
            response = httpx.Response(200, content=self._watch_body())
            self.watch_responses.append(response)
            return response

        return httpx.Response(404)

    async def _watch_body(self) -> AsyncIterator[bytes]:
        for line in self.watch_lines:
            yield line + b"\n"
        if self.hold_watch_open:
            await asyncio.Event().wait()

    def transport(self) -> UnixSocketTransport:
        return UnixSocketTransport(
            Path("/var/run/tailscale/tailscaled.sock"),
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def fake_tailscaled() -> FakeTailscaled:
    """Fresh fake daemon with a healthy node and an empty serve config."""
    return FakeTailscaled()


@pytest.fixture
def password_file(tmp_path: Path) -> Path:
    """LocalAPI password file with correct 0600 permissions."""
    path = tmp_path / "localapi-password"
    path.write_text("s3cret\n")
    path.chmod(0o600)
    return path
