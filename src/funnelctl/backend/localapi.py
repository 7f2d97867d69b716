"""Tunnel backend driving tailscaled through its LocalAPI.

apply() runs these steps in order, stopping at the first failure:

1. Open watch-ipn-bus and take the session id it announces
2. Probe the local target (2 second connect timeout)
3. Fetch node status
4. Check daemon version, DNS name, HTTPS certificates and Funnel policy
5. Up to 3 times: read serve config + ETag, check conflicts (top level and
   every other foreground session), add our handler under
   Foreground[session], write back with If-Match. A 412/409 means someone
   else wrote in between; start over from the read.

The serve config is only changed by the final successful write. The session
stream stays open for the lifetime of the tunnel; tailscaled drops the
Foreground entry when it closes, so remove() only closes the stream.

LocalAPI errors are translated into funnelctl.exceptions here and nowhere
else (map_localapi_error).
"""

from __future__ import annotations

__all__ = [
    "LocalAPIBackend",
    "build_transport",
    "build_url",
    "check_local_target",
    "ensure_prerequisites",
    "ensure_version_supported",
    "find_first_socket",
    "map_localapi_error",
    "parse_version",
]

import asyncio
import re
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote

from funnelctl.backend.base import BackendStatus
from funnelctl.config import LocalAPIConfig
from funnelctl.constants import (
    LOCALAPI_TCP_HOST,
    MAX_APPLY_ATTEMPTS,
    MIN_SUPPORTED_VERSION,
    SOCKET_CANDIDATES,
    TARGET_PROBE_TIMEOUT_SECONDS,
)
from funnelctl.core.models import ServeConfig
from funnelctl.core.patch import ConflictCheck, RouteConflict, apply_patch, detect_conflict
from funnelctl.core.spec import Lease, LocalTarget, TunnelResult, TunnelSpec
from funnelctl.exceptions import (
    ApplyFailedError,
    ConcurrentModificationError,
    ConflictError,
    FunnelError,
    InvalidArgumentError,
    PermissionDeniedError,
    PrerequisitesError,
    TargetPortInaccessibleError,
    UnreachableError,
    VersionTooOldError,
)
from funnelctl.localapi.client import DaemonStatus, LocalAPIClient, SessionWatch
from funnelctl.localapi.errors import (
    InvalidHeaderError,
    LocalAPIConnectionError,
    LocalAPIError,
    LocalAPIHTTPError,
    MalformedResponseError,
    MissingSessionIDError,
    PasswordFileError,
)
from funnelctl.localapi.transport import LocalAPITransport, TcpAuthTransport, UnixSocketTransport
from funnelctl.utils.logging import get_logger

_logger = get_logger()

# Write statuses meaning "serve config changed since you read it"
_RETRYABLE_WRITE_STATUSES = frozenset({409, 412})

# Characters left as-is in public URL paths
_URL_PATH_SAFE = "/!$&'()*+,;=:@%"


# =============================================================================
# Error translation
# =============================================================================


def map_localapi_error(error: LocalAPIError) -> FunnelError:
    """Translate a LocalAPI protocol error into the user-facing taxonomy.

    Args:
        error: Error raised by the transport or protocol client.

    Returns:
        FunnelError subclass carrying the exit code for this failure.
    """
    if isinstance(error, LocalAPIHTTPError):
        request = f"{error.method} {error.path}"
        if error.status_code in (401, 403):
            return PermissionDeniedError(f"LocalAPI auth rejected for {request}")
        if error.status_code == 404:
            return VersionTooOldError(f"LocalAPI endpoint {request} not found")
        return ApplyFailedError(f"LocalAPI {request} failed: {error.body}")
    if isinstance(error, PasswordFileError):
        return InvalidArgumentError(str(error))
    if isinstance(error, LocalAPIConnectionError):
        return UnreachableError(str(error))
    if isinstance(error, MalformedResponseError):
        return ApplyFailedError(f"Failed to parse LocalAPI response: {error}")
    if isinstance(error, (MissingSessionIDError, InvalidHeaderError)):
        return ApplyFailedError(str(error))
    return FunnelError(str(error))


# =============================================================================
# Transport selection
# =============================================================================


def find_first_socket(candidates: Iterable[Path] = SOCKET_CANDIDATES) -> Path | None:
    """Return the first tailscaled socket that exists, if any."""
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def build_transport(
    config: LocalAPIConfig,
    candidates: Iterable[Path] = SOCKET_CANDIDATES,
) -> LocalAPITransport:
    """Choose and construct the LocalAPI transport.

    Args:
        config: Validated transport options.
        candidates: Well-known socket locations to probe.

    Returns:
        TcpAuthTransport or UnixSocketTransport.

    Raises:
        InvalidArgumentError: Password file is unusable.
        UnreachableError: No socket could be found.
    """
    if config.localapi_port is not None and config.localapi_password_file is not None:
        try:
            return TcpAuthTransport(
                config.localapi_port,
                config.localapi_password_file,
                host=LOCALAPI_TCP_HOST,
            )
        except LocalAPIError as e:
            raise map_localapi_error(e) from e

    if config.socket is not None:
        if not config.socket.exists():
            raise UnreachableError(f"Socket {config.socket} not found")
        return UnixSocketTransport(config.socket)

    socket_path = find_first_socket(candidates)
    if socket_path is not None:
        return UnixSocketTransport(socket_path)

    raise UnreachableError(
        "No LocalAPI socket found; try --localapi-port with --localapi-password-file"
    )


# =============================================================================
# Prerequisites
# =============================================================================


def parse_version(version: str) -> tuple[int, int, int] | None:
    """Parse "1.76.1" or "1.76.1-t0123abcd" into (major, minor, patch).

    A missing patch component counts as 0.

    Returns:
        Version tuple, or None when the string is not a version.
    """
    parts = re.split(r"[.-]", version)
    if len(parts) < 2:
        return None
    numbers = parts[:3] if len(parts) >= 3 else [*parts, "0"]
    if not all(part.isdigit() for part in numbers):
        return None
    major, minor, patch = (int(part) for part in numbers)
    return major, minor, patch


def ensure_version_supported(version: str | None) -> None:
    """Raise VersionTooOldError unless tailscaled is at least 1.50.0."""
    if version is None:
        raise VersionTooOldError("tailscaled version missing")
    parsed = parse_version(version)
    if parsed is None:
        raise VersionTooOldError(f"Unsupported tailscaled version {version}")
    if parsed < MIN_SUPPORTED_VERSION:
        raise VersionTooOldError(f"tailscaled version {version} is not supported")


def ensure_prerequisites(status: DaemonStatus) -> str:
    """Check the node can serve Funnel traffic.

    Returns:
        The node's DNS name.

    Raises:
        PrerequisitesError: DNS name, HTTPS or Funnel is missing.
    """
    if not status.dns_name:
        raise PrerequisitesError("Node not yet assigned DNS name")
    if status.https_enabled is not True:
        raise PrerequisitesError("HTTPS not enabled. Run `tailscale cert`")
    if status.funnel_enabled is not True:
        raise PrerequisitesError("Funnel not enabled in tailnet policy")
    return status.dns_name


async def check_local_target(
    target: LocalTarget,
    timeout: float = TARGET_PROBE_TIMEOUT_SECONDS,
) -> None:
    """Verify something accepts TCP connections on the local target.

    Raises:
        TargetPortInaccessibleError: Connection refused, timed out or unresolvable.
    """
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(target.bind, target.port), timeout=timeout
        )
    except TimeoutError as e:
        raise TargetPortInaccessibleError(f"Timed out connecting to {target}") from e
    except OSError as e:
        raise TargetPortInaccessibleError(f"Connection refused to {target}") from e

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass


def build_url(dns_name: str, https_port: int, path: str) -> str:
    """Public URL for a tunnel; the port is omitted for 443."""
    host = dns_name if https_port == 443 else f"{dns_name}:{https_port}"
    return f"https://{host}{quote(path, safe=_URL_PATH_SAFE)}"


# =============================================================================
# Backend
# =============================================================================


class LocalAPIBackend:
    """Backend that installs tunnels as Foreground serve entries.

    Attributes:
        client: Protocol client for LocalAPI.
        force: Install even when the route conflicts with existing handlers.
    """

    def __init__(self, client: LocalAPIClient, force: bool = False) -> None:
        self.client = client
        self.force = force
        self._watch: SessionWatch | None = None
        self._lease: Lease | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_transport(cls, transport: LocalAPITransport, force: bool = False) -> LocalAPIBackend:
        return cls(LocalAPIClient(transport), force=force)

    @property
    def lease(self) -> Lease | None:
        """The lease installed by the last successful apply(), if still held."""
        return self._lease

    async def apply(self, spec: TunnelSpec) -> TunnelResult:
        """Install the tunnel described by spec.

        Returns:
            TunnelResult whose lease_id is the LocalAPI session id.

        Raises:
            FunnelError: Any failure, already translated.
        """
        try:
            watch = await self.client.watch_session()
        except LocalAPIError as e:
            raise map_localapi_error(e) from e

        try:
            await check_local_target(spec.local_target)
            status = await self._fetch_status()
            ensure_version_supported(status.version)
            dns_name = ensure_prerequisites(status)
            host_port = f"{dns_name}:{spec.https_port}"
            await self._commit(watch.session_id, host_port, spec)
        except BaseException:
            await watch.aclose()
            raise

        applied_at = datetime.now(timezone.utc)
        async with self._lock:
            previous = self._watch
            self._watch = watch
            self._lease = Lease(lease_id=watch.session_id, tunnel_spec=spec, created_at=applied_at)
        if previous is not None:
            await previous.aclose()

        return TunnelResult(
            url=build_url(dns_name, spec.https_port, spec.path),
            lease_id=watch.session_id,
            applied_at=applied_at,
        )

    async def remove(self, lease_id: str) -> None:
        """Tear the tunnel down by closing the session stream (idempotent)."""
        async with self._lock:
            watch = self._watch
            self._watch = None
            self._lease = None
        if watch is None:
            return
        await watch.aclose()
        _logger.info(
            {
                "event": "session_closed",
                "message": f"LocalAPI session {lease_id} closed",
                "session_id": lease_id,
            }
        )

    async def status(self) -> BackendStatus:
        """Report daemon readiness, probing serve-config access for permissions."""
        daemon = await self._fetch_status()

        permissions_ok: bool | None
        try:
            await self.client.get_serve_config()
            permissions_ok = True
        except LocalAPIHTTPError as e:
            permissions_ok = False if e.status_code in (401, 403) else None
        except LocalAPIError:
            permissions_ok = None

        return BackendStatus(**daemon.model_dump(), permissions_ok=permissions_ok)

    async def aclose(self) -> None:
        """Close any open session and the underlying transport."""
        if self._lease is not None:
            await self.remove(self._lease.lease_id)
        await self.client.aclose()

    async def _fetch_status(self) -> DaemonStatus:
        try:
            return await self.client.get_status()
        except LocalAPIError as e:
            raise map_localapi_error(e) from e

    async def _commit(self, session_id: str, host_port: str, spec: TunnelSpec) -> int:
        target = str(spec.local_target)

        for attempt in range(1, MAX_APPLY_ATTEMPTS + 1):
            try:
                response = await self.client.get_serve_config()
            except LocalAPIError as e:
                raise map_localapi_error(e) from e
            if response.etag is None:
                raise VersionTooOldError("ServeConfig ETag missing; LocalAPI too old")

            config = response.config
            self._check_conflicts(config, session_id, host_port, spec.path, target, spec.funnel)
            apply_patch(config, session_id, host_port, spec.path, target, spec.funnel)

            try:
                await self.client.set_serve_config(config, response.etag)
            except LocalAPIHTTPError as e:
                if e.status_code not in _RETRYABLE_WRITE_STATUSES:
                    raise map_localapi_error(e) from e
                _logger.info(
                    {
                        "event": "serve_config_write_conflict",
                        "message": f"ServeConfig changed during write (attempt {attempt}), retrying",
                        "attempt": attempt,
                        "status_code": e.status_code,
                    }
                )
                continue
            except LocalAPIError as e:
                raise map_localapi_error(e) from e

            _logger.info(
                {
                    "event": "serve_config_applied",
                    "message": f"Installed {spec.path} -> {target} on {host_port}",
                    "attempt": attempt,
                    "session_id": session_id,
                }
            )
            return attempt

        raise ConcurrentModificationError("ServeConfig changed concurrently; retry later")

    def _check_conflicts(
        self,
        config: ServeConfig,
        session_id: str,
        host_port: str,
        path: str,
        target: str,
        funnel: bool,
    ) -> None:
        try:
            if detect_conflict(config, host_port, path, target, funnel) is ConflictCheck.IDEMPOTENT:
                _logger.info(
                    {
                        "event": "route_already_present",
                        "message": f"{path} already maps to {target} on {host_port}",
                    }
                )
        except RouteConflict as conflict:
            self._conflict(conflict.describe())

        for other_session, session_config in (config.foreground or {}).items():
            if other_session == session_id or session_config is None:
                continue
            try:
                outcome = detect_conflict(session_config, host_port, path, target, funnel)
            except RouteConflict as conflict:
                self._conflict(f"{conflict.describe()} (session {other_session})")
                continue
            if outcome is ConflictCheck.IDEMPOTENT:
                self._conflict(f"Path {path} already in use by foreground session {other_session}")

    def _conflict(self, context: str) -> None:
        if not self.force:
            raise ConflictError(context)
        _logger.warning(
            {
                "event": "route_conflict_forced",
                "message": f"Ignoring conflict (--force): {context}",
            }
        )
