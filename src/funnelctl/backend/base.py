"""Backend contract shared by the CLI commands.

A backend installs a tunnel (apply), tears it down (remove) and reports the
daemon's readiness (status). LocalAPIBackend is the real implementation;
UnreachableBackend stands in when no daemon endpoint was found, so
`funnelctl doctor` can still report on every check.
"""

from __future__ import annotations

__all__ = [
    "Backend",
    "BackendStatus",
    "UnreachableBackend",
]

from typing import Protocol

from funnelctl.core.models import FrozenModel
from funnelctl.core.spec import TunnelResult, TunnelSpec
from funnelctl.exceptions import UnreachableError


class BackendStatus(FrozenModel):
    """Readiness facts reported by a backend. None means unknown."""

    dns_name: str | None = None
    version: str | None = None
    https_enabled: bool | None = None
    funnel_enabled: bool | None = None
    permissions_ok: bool | None = None


class Backend(Protocol):
    """Interface implemented by tunnel backends."""

    async def apply(self, spec: TunnelSpec) -> TunnelResult: ...

    async def remove(self, lease_id: str) -> None: ...

    async def status(self) -> BackendStatus: ...

    async def aclose(self) -> None: ...


class UnreachableBackend:
    """Backend whose every operation fails with UnreachableError."""

    def __init__(self, context: str) -> None:
        self.context = context

    async def apply(self, spec: TunnelSpec) -> TunnelResult:
        raise UnreachableError(self.context)

    async def remove(self, lease_id: str) -> None:
        raise UnreachableError(self.context)

    async def status(self) -> BackendStatus:
        raise UnreachableError(self.context)

    async def aclose(self) -> None:
        return None
