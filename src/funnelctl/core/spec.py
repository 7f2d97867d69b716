"""Tunnel request and result values passed between the CLI and backends."""

from __future__ import annotations

__all__ = [
    "Lease",
    "LocalTarget",
    "TunnelResult",
    "TunnelSpec",
]

from datetime import datetime, timezone

from pydantic import Field

from funnelctl.constants import BACKEND_KIND
from funnelctl.core.models import FrozenModel


class LocalTarget(FrozenModel):
    """Local service the tunnel forwards to.

    Attributes:
        bind: IP address (or host name) the service listens on.
        port: TCP port the service listens on.
    """

    bind: str
    port: int

    @property
    def host_for_url(self) -> str:
        if ":" in self.bind and not self.bind.startswith("["):
            return f"[{self.bind}]"
        return self.bind

    @property
    def url(self) -> str:
        return f"http://{self.host_for_url}:{self.port}"

    def __str__(self) -> str:
        return self.url


class TunnelSpec(FrozenModel):
    """What the user asked for."""

    local_target: LocalTarget
    https_port: int
    path: str
    funnel: bool = True


class TunnelResult(FrozenModel):
    """What the backend installed.

    Attributes:
        url: Public HTTPS URL of the tunnel.
        lease_id: Handle for remove(); the LocalAPI session id.
        applied_at: When the serve config write succeeded.
        expires_at: Scheduled teardown time, if a TTL was given.
    """

    url: str
    lease_id: str
    applied_at: datetime
    expires_at: datetime | None = None


class Lease(FrozenModel):
    """In-memory record of an installed route. Never persisted."""

    lease_id: str
    tunnel_spec: TunnelSpec
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime | None = None
    backend_kind: str = BACKEND_KIND
