"""Tests for the LocalAPI tunnel backend.

Runs LocalAPIBackend against the fake tailscaled from conftest. The local
target probe is patched out except in TestCheckLocalTarget.

Tests use the AAA pattern (Arrange-Act-Assert) for clarity.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from funnelctl.backend.base import UnreachableBackend
from funnelctl.backend.localapi import (
    LocalAPIBackend,
    build_transport,
    build_url,
    check_local_target,
    ensure_version_supported,
    find_first_socket,
    map_localapi_error,
    parse_version,
)
from funnelctl.config import LocalAPIConfig
from funnelctl.constants import SERVE_CONFIG_ENDPOINT, STATUS_ENDPOINT, WATCH_IPN_BUS_ENDPOINT
from funnelctl.core.spec import LocalTarget, TunnelSpec
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
from funnelctl.localapi.errors import (
    LocalAPIConnectionError,
    LocalAPIHTTPError,
    MalformedResponseError,
    MissingSessionIDError,
    PasswordPermissionsError,
)
from funnelctl.localapi.transport import TcpAuthTransport, UnixSocketTransport

DNS_NAME = "node.tailnet.ts.net"
HOST_PORT = f"{DNS_NAME}:443"
TARGET = "http://127.0.0.1:8081"


def _spec(path: str = "/funnelctl/abcd1234", https_port: int = 443) -> TunnelSpec:
    return TunnelSpec(
        local_target=LocalTarget(bind="127.0.0.1", port=8081),
        https_port=https_port,
        path=path,
    )


@pytest.fixture(autouse=True)
def reachable_target() -> Iterator[AsyncMock]:
    """Pretend the local service is listening."""
    with patch("funnelctl.backend.localapi.check_local_target", new=AsyncMock()) as probe:
        yield probe


@pytest.fixture
def backend(fake_tailscaled) -> LocalAPIBackend:
    return LocalAPIBackend.from_transport(fake_tailscaled.transport())


# ============================================================================
# Tests: apply
# ============================================================================


class TestApply:
    """Tests for LocalAPIBackend.apply()."""

    async def test_installs_handler_under_session(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Act
        result = await backend.apply(_spec())
        await backend.aclose()

        # Assert
        assert result.url == f"https://{DNS_NAME}/funnelctl/abcd1234"
        assert result.lease_id == "sess-1"
        posted = fake_tailscaled.posted[0]
        assert posted["Foreground"]["sess-1"] == {
            "Web": {HOST_PORT: {"Handlers": {"/funnelctl/abcd1234": {"Proxy": TARGET}}}},
            "AllowFunnel": {HOST_PORT: True},
        }

    async def test_sends_if_match_from_etag(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Act
        await backend.apply(_spec())
        await backend.aclose()

        # Assert
        post = next(r for r in fake_tailscaled.requests if r.method == "POST")
        assert post.headers["If-Match"] == '"etag-1"'

    async def test_preserves_existing_document(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        fake_tailscaled.serve_config = {
            "TCP": {"443": {"HTTPS": True}},
            "Web": {HOST_PORT: {"Handlers": {"/other": {"Proxy": "http://127.0.0.1:1"}}}},
            "Unknown": {"a": [1, 2]},
        }

        # Act
        await backend.apply(_spec())
        await backend.aclose()

        # Assert
        posted = fake_tailscaled.posted[0]
        assert posted["TCP"] == {"443": {"HTTPS": True}}
        assert posted["Web"] == fake_tailscaled.serve_config["Web"]
        assert posted["Unknown"] == {"a": [1, 2]}

    async def test_non_default_https_port_in_url(self, backend: LocalAPIBackend) -> None:
        # Act
        result = await backend.apply(_spec(https_port=8443))
        await backend.aclose()

        # Assert
        assert result.url == f"https://{DNS_NAME}:8443/funnelctl/abcd1234"

    async def test_records_lease(self, backend: LocalAPIBackend) -> None:
        # Act
        result = await backend.apply(_spec())

        # Assert
        assert backend.lease is not None
        assert backend.lease.lease_id == result.lease_id
        assert backend.lease.backend_kind == "local_api"
        await backend.aclose()

    async def test_keeps_watch_stream_open(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Act
        await backend.apply(_spec())

        # Assert
        assert not fake_tailscaled.watch_responses[0].is_closed
        await backend.aclose()


class TestApplyRetries:
    """Optimistic concurrency loop."""

    async def test_two_precondition_failures_then_success(
        self, fake_tailscaled, backend: LocalAPIBackend
    ) -> None:
        # Arrange
        fake_tailscaled.post_statuses = [412, 412]

        # Act
        await backend.apply(_spec())
        await backend.aclose()

        # Assert
        assert fake_tailscaled.count("GET", SERVE_CONFIG_ENDPOINT) == 3
        assert fake_tailscaled.count("POST", SERVE_CONFIG_ENDPOINT) == 3

    async def test_conflict_status_is_retried(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        fake_tailscaled.post_statuses = [409]

        # Act
        await backend.apply(_spec())
        await backend.aclose()

        # Assert
        assert fake_tailscaled.count("POST", SERVE_CONFIG_ENDPOINT) == 2

    async def test_three_failures_is_concurrent_modification(
        self, fake_tailscaled, backend: LocalAPIBackend
    ) -> None:
        # Arrange
        fake_tailscaled.post_statuses = [412, 412, 412, 200]

        # Act & Assert
        with pytest.raises(ConcurrentModificationError) as exc_info:
            await backend.apply(_spec())
        assert exc_info.value.exit_code == 14
        assert exc_info.value.context == "ServeConfig changed concurrently; retry later"
        assert fake_tailscaled.count("POST", SERVE_CONFIG_ENDPOINT) == 3
        assert fake_tailscaled.watch_responses[0].is_closed
        assert backend.lease is None

    async def test_other_write_errors_are_not_retried(
        self, fake_tailscaled, backend: LocalAPIBackend
    ) -> None:
        # Arrange
        fake_tailscaled.post_statuses = [500]

        # Act & Assert
        with pytest.raises(ApplyFailedError, match="Apply operation failed"):
            await backend.apply(_spec())
        assert fake_tailscaled.count("POST", SERVE_CONFIG_ENDPOINT) == 1

    async def test_missing_etag_means_daemon_too_old(
        self, fake_tailscaled, backend: LocalAPIBackend
    ) -> None:
        # Arrange
        fake_tailscaled.etag = None

        # Act & Assert
        with pytest.raises(VersionTooOldError) as exc_info:
            await backend.apply(_spec())
        assert exc_info.value.context == "ServeConfig ETag missing; LocalAPI too old"
        assert fake_tailscaled.count("POST", SERVE_CONFIG_ENDPOINT) == 0


class TestApplyConflicts:
    """Conflict checks against the top level and other sessions."""

    async def test_top_level_conflict_fails(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        fake_tailscaled.serve_config = {
            "Web": {HOST_PORT: {"Handlers": {"/funnelctl/": {"Proxy": "http://127.0.0.1:9"}}}}
        }

        # Act & Assert
        with pytest.raises(ConflictError, match="Configuration conflict") as exc_info:
            await backend.apply(_spec())
        assert "captured by existing prefix '/funnelctl/'" in exc_info.value.context
        assert fake_tailscaled.posted == []
        assert fake_tailscaled.watch_responses[0].is_closed

    async def test_force_overrides_conflict(self, fake_tailscaled) -> None:
        # Arrange
        fake_tailscaled.serve_config = {
            "Web": {HOST_PORT: {"Handlers": {"/funnelctl/": {"Proxy": "http://127.0.0.1:9"}}}}
        }
        backend = LocalAPIBackend.from_transport(fake_tailscaled.transport(), force=True)

        # Act
        with patch("funnelctl.backend.localapi._logger.warning") as warning:
            await backend.apply(_spec())
        await backend.aclose()

        # Assert
        assert len(fake_tailscaled.posted) == 1
        warning.assert_called_once()
        assert warning.call_args.args[0]["event"] == "route_conflict_forced"

    async def test_other_session_conflict_names_session(
        self, fake_tailscaled, backend: LocalAPIBackend
    ) -> None:
        # Arrange
        fake_tailscaled.serve_config = {
            "Foreground": {
                "other-sess": {
                    "Web": {HOST_PORT: {"Handlers": {"/funnelctl/abcd1234": {"Proxy": "http://127.0.0.1:9"}}}}
                }
            }
        }

        # Act & Assert
        with pytest.raises(ConflictError) as exc_info:
            await backend.apply(_spec())
        assert exc_info.value.context.endswith("(session other-sess)")

    async def test_same_route_in_other_session_is_in_use(
        self, fake_tailscaled, backend: LocalAPIBackend
    ) -> None:
        # Arrange
        fake_tailscaled.serve_config = {
            "Foreground": {
                "other-sess": {
                    "Web": {HOST_PORT: {"Handlers": {"/funnelctl/abcd1234": {"Proxy": TARGET}}}},
                    "AllowFunnel": {HOST_PORT: True},
                }
            }
        }

        # Act & Assert
        with pytest.raises(ConflictError) as exc_info:
            await backend.apply(_spec())
        assert exc_info.value.context == (
            "Path /funnelctl/abcd1234 already in use by foreground session other-sess"
        )

    async def test_null_session_document_is_skipped(
        self, fake_tailscaled, backend: LocalAPIBackend
    ) -> None:
        # Arrange
        fake_tailscaled.serve_config = {"Foreground": {"other-sess": None}}

        # Act
        await backend.apply(_spec())

        # Assert
        foreground = fake_tailscaled.posted[0]["Foreground"]
        assert foreground["other-sess"] is None
        assert "sess-1" in foreground

    async def test_own_session_is_not_checked(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        fake_tailscaled.serve_config = {
            "Foreground": {
                "sess-1": {
                    "Web": {HOST_PORT: {"Handlers": {"/funnelctl/abcd1234": {"Proxy": "http://127.0.0.1:9"}}}}
                }
            }
        }

        # Act
        await backend.apply(_spec())
        await backend.aclose()

        # Assert
        handlers = fake_tailscaled.posted[0]["Foreground"]["sess-1"]["Web"][HOST_PORT]["Handlers"]
        assert handlers == {"/funnelctl/abcd1234": {"Proxy": TARGET}}

    async def test_idempotent_top_level_route_is_allowed(
        self, fake_tailscaled, backend: LocalAPIBackend
    ) -> None:
        # Arrange
        fake_tailscaled.serve_config = {
            "Web": {HOST_PORT: {"Handlers": {"/funnelctl/abcd1234": {"Proxy": TARGET}}}},
            "AllowFunnel": {HOST_PORT: True},
        }

        # Act
        await backend.apply(_spec())
        await backend.aclose()

        # Assert
        assert len(fake_tailscaled.posted) == 1


class TestApplyPrerequisites:
    """Failures before any write."""

    async def test_target_unreachable(
        self, fake_tailscaled, backend: LocalAPIBackend, reachable_target: AsyncMock
    ) -> None:
        # Arrange
        reachable_target.side_effect = TargetPortInaccessibleError("Connection refused")

        # Act & Assert
        with pytest.raises(TargetPortInaccessibleError):
            await backend.apply(_spec())
        assert fake_tailscaled.count("GET", STATUS_ENDPOINT) == 0
        assert fake_tailscaled.watch_responses[0].is_closed

    @pytest.mark.parametrize("version", ["1.48.2", "garbage"])
    async def test_old_or_unparseable_version(
        self, fake_tailscaled, backend: LocalAPIBackend, version: str
    ) -> None:
        # Arrange
        fake_tailscaled.status["Version"] = version

        # Act & Assert
        with pytest.raises(VersionTooOldError):
            await backend.apply(_spec())
        assert fake_tailscaled.posted == []

    async def test_missing_version(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        del fake_tailscaled.status["Version"]

        # Act & Assert
        with pytest.raises(VersionTooOldError, match="Version too old"):
            await backend.apply(_spec())

    async def test_https_disabled(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        fake_tailscaled.status["Self"]["CertDomains"] = []

        # Act & Assert
        with pytest.raises(PrerequisitesError) as exc_info:
            await backend.apply(_spec())
        assert exc_info.value.context == "HTTPS not enabled. Run `tailscale cert`"

    async def test_funnel_not_allowed(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        fake_tailscaled.status["Self"]["Capabilities"] = []

        # Act & Assert
        with pytest.raises(PrerequisitesError) as exc_info:
            await backend.apply(_spec())
        assert exc_info.value.context == "Funnel not enabled in tailnet policy"

    async def test_no_dns_name(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        fake_tailscaled.status["Self"] = {"CertDomains": [DNS_NAME], "Capabilities": ["funnel"]}
        fake_tailscaled.status.pop("CurrentTailnet")

        # Act & Assert
        with pytest.raises(PrerequisitesError) as exc_info:
            await backend.apply(_spec())
        assert exc_info.value.context == "Node not yet assigned DNS name"

    async def test_status_auth_rejected(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        fake_tailscaled.overrides[("GET", STATUS_ENDPOINT)] = 403

        # Act & Assert
        with pytest.raises(PermissionDeniedError) as exc_info:
            await backend.apply(_spec())
        assert exc_info.value.exit_code == 11

    async def test_watch_endpoint_missing_means_too_old(
        self, fake_tailscaled, backend: LocalAPIBackend
    ) -> None:
        # Arrange
        fake_tailscaled.overrides[("GET", WATCH_IPN_BUS_ENDPOINT)] = 404

        # Act & Assert
        with pytest.raises(VersionTooOldError):
            await backend.apply(_spec())

    async def test_stream_without_session_id(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        fake_tailscaled.watch_lines = [b'{"State":2}']
        fake_tailscaled.hold_watch_open = False

        # Act & Assert
        with pytest.raises(ApplyFailedError, match="Apply operation failed"):
            await backend.apply(_spec())


# ============================================================================
# Tests: remove, status, aclose
# ============================================================================


class TestRemove:
    """Tests for LocalAPIBackend.remove()."""

    async def test_closes_watch_and_forgets_lease(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        result = await backend.apply(_spec())

        # Act
        await backend.remove(result.lease_id)

        # Assert
        assert fake_tailscaled.watch_responses[0].is_closed
        assert backend.lease is None
        await backend.aclose()

    async def test_is_idempotent(self, backend: LocalAPIBackend) -> None:
        # Arrange
        result = await backend.apply(_spec())

        # Act
        await backend.remove(result.lease_id)
        await backend.remove(result.lease_id)

        # Assert
        assert backend.lease is None
        await backend.aclose()

    async def test_does_not_write_serve_config(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        """The daemon drops the session entry itself when the stream closes."""
        # Arrange
        result = await backend.apply(_spec())

        # Act
        await backend.remove(result.lease_id)
        await backend.aclose()

        # Assert
        assert fake_tailscaled.count("POST", SERVE_CONFIG_ENDPOINT) == 1

    async def test_aclose_tears_down_open_tunnel(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        await backend.apply(_spec())

        # Act
        await backend.aclose()

        # Assert
        assert fake_tailscaled.watch_responses[0].is_closed


class TestStatus:
    """Tests for LocalAPIBackend.status()."""

    async def test_healthy(self, backend: LocalAPIBackend) -> None:
        # Act
        status = await backend.status()
        await backend.aclose()

        # Assert
        assert status.dns_name == DNS_NAME
        assert status.version == "1.76.1-t1234abcd"
        assert status.https_enabled is True
        assert status.funnel_enabled is True
        assert status.permissions_ok is True

    async def test_serve_config_forbidden(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        fake_tailscaled.overrides[("GET", SERVE_CONFIG_ENDPOINT)] = 403

        # Act
        status = await backend.status()

        # Assert
        assert status.permissions_ok is False

    async def test_serve_config_other_error_is_unknown(
        self, fake_tailscaled, backend: LocalAPIBackend
    ) -> None:
        # Arrange
        fake_tailscaled.overrides[("GET", SERVE_CONFIG_ENDPOINT)] = 500

        # Act
        status = await backend.status()

        # Assert
        assert status.permissions_ok is None

    async def test_status_failure_is_translated(self, fake_tailscaled, backend: LocalAPIBackend) -> None:
        # Arrange
        fake_tailscaled.overrides[("GET", STATUS_ENDPOINT)] = 401

        # Act & Assert
        with pytest.raises(PermissionDeniedError):
            await backend.status()


class TestUnreachableBackend:
    """Tests for UnreachableBackend."""

    async def test_every_operation_is_unreachable(self) -> None:
        # Arrange
        backend = UnreachableBackend("No LocalAPI socket found")

        # Act & Assert
        with pytest.raises(UnreachableError, match="LocalAPI unreachable"):
            await backend.status()
        with pytest.raises(UnreachableError):
            await backend.apply(_spec())
        with pytest.raises(UnreachableError):
            await backend.remove("x")
        await backend.aclose()


# ============================================================================
# Tests: helpers
# ============================================================================


class TestMapLocalAPIError:
    """Tests for map_localapi_error()."""

    @pytest.mark.parametrize(
        "status, expected",
        [
            (401, PermissionDeniedError),
            (403, PermissionDeniedError),
            (404, VersionTooOldError),
            (500, ApplyFailedError),
        ],
    )
    def test_http_statuses(self, status: int, expected: type[FunnelError]) -> None:
        # Act
        error = map_localapi_error(LocalAPIHTTPError(status, "GET", "/localapi/v0/status", "body"))

        # Assert
        assert type(error) is expected

    def test_http_context_names_request(self) -> None:
        # Act
        error = map_localapi_error(LocalAPIHTTPError(500, "POST", SERVE_CONFIG_ENDPOINT, "boom"))

        # Assert
        assert error.context == f"LocalAPI POST {SERVE_CONFIG_ENDPOINT} failed: boom"

    def test_other_errors(self, tmp_path: Path) -> None:
        assert isinstance(map_localapi_error(LocalAPIConnectionError("refused")), UnreachableError)
        assert isinstance(map_localapi_error(MalformedResponseError("bad")), ApplyFailedError)
        assert isinstance(map_localapi_error(MissingSessionIDError()), ApplyFailedError)
        assert isinstance(
            map_localapi_error(PasswordPermissionsError(tmp_path / "pw", 0o644)), InvalidArgumentError
        )


class TestVersions:
    """Tests for parse_version() and ensure_version_supported()."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("1.76.1", (1, 76, 1)),
            ("1.76.1-t0123abcd-g4567", (1, 76, 1)),
            ("1.50", (1, 50, 0)),
            ("v1.2.3", None),
            ("1", None),
            ("", None),
        ],
    )
    def test_parse_version(self, text: str, expected: tuple[int, int, int] | None) -> None:
        assert parse_version(text) == expected

    def test_minimum_is_supported(self) -> None:
        ensure_version_supported("1.50.0")

    def test_older_is_rejected(self) -> None:
        with pytest.raises(VersionTooOldError, match="Version too old"):
            ensure_version_supported("1.49.9")


class TestBuildUrl:
    """Tests for build_url()."""

    def test_default_port_omitted(self) -> None:
        assert build_url(DNS_NAME, 443, "/hook") == f"https://{DNS_NAME}/hook"

    def test_other_port_included(self) -> None:
        assert build_url(DNS_NAME, 10000, "/hook") == f"https://{DNS_NAME}:10000/hook"

    def test_path_is_percent_encoded(self) -> None:
        assert build_url(DNS_NAME, 443, "/a b") == f"https://{DNS_NAME}/a%20b"


class TestBuildTransport:
    """Transport selection order."""

    def test_tcp_when_port_and_password_given(self, password_file: Path) -> None:
        # Arrange
        config = LocalAPIConfig(localapi_port=41112, localapi_password_file=password_file)

        # Act
        transport = build_transport(config, candidates=[])

        # Assert
        assert isinstance(transport, TcpAuthTransport)
        assert transport.port == 41112

    def test_bad_password_file_is_invalid_argument(self, tmp_path: Path) -> None:
        # Arrange
        config = LocalAPIConfig(localapi_port=41112, localapi_password_file=tmp_path / "missing")

        # Act & Assert
        with pytest.raises(InvalidArgumentError):
            build_transport(config)

    def test_explicit_socket_must_exist(self, tmp_path: Path) -> None:
        # Arrange
        config = LocalAPIConfig(socket=tmp_path / "missing.sock")

        # Act & Assert
        with pytest.raises(UnreachableError) as exc_info:
            build_transport(config)
        assert exc_info.value.context == f"Socket {tmp_path / 'missing.sock'} not found"

    def test_explicit_socket(self, tmp_path: Path) -> None:
        # Arrange
        sock = tmp_path / "tailscaled.sock"
        sock.touch()

        # Act
        transport = build_transport(LocalAPIConfig(socket=sock), candidates=[])

        # Assert
        assert isinstance(transport, UnixSocketTransport)
        assert transport.socket_path == sock

    def test_first_existing_candidate(self, tmp_path: Path) -> None:
        # Arrange
        second = tmp_path / "second.sock"
        second.touch()

        # Act
        transport = build_transport(LocalAPIConfig(), candidates=[tmp_path / "first.sock", second])

        # Assert
        assert isinstance(transport, UnixSocketTransport)
        assert transport.socket_path == second

    def test_no_socket_found(self, tmp_path: Path) -> None:
        # Act & Assert
        with pytest.raises(UnreachableError, match="LocalAPI unreachable") as exc_info:
            build_transport(LocalAPIConfig(), candidates=[tmp_path / "nope.sock"])
        assert "--localapi-port" in exc_info.value.context

    def test_find_first_socket_none(self, tmp_path: Path) -> None:
        assert find_first_socket([tmp_path / "a", tmp_path / "b"]) is None


class TestCheckLocalTarget:
    """Tests for the real check_local_target() probe."""

    async def test_listening_port_passes(self) -> None:
        # Arrange
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]

        # Act
        try:
            await check_local_target(LocalTarget(bind="127.0.0.1", port=port))
        finally:
            server.close()
            await server.wait_closed()

    async def test_closed_port_is_inaccessible(self) -> None:
        # Arrange
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        # Act & Assert
        with pytest.raises(TargetPortInaccessibleError) as exc_info:
            await check_local_target(LocalTarget(bind="127.0.0.1", port=port))
        assert exc_info.value.context == f"Connection refused to http://127.0.0.1:{port}"

    async def test_timeout_is_inaccessible(self) -> None:
        # Arrange
        async def never_connects(*args: object, **kwargs: object) -> None:
            await asyncio.sleep(10)

        # Act & Assert
        with patch("funnelctl.backend.localapi.asyncio.open_connection", new=never_connects):
            with pytest.raises(TargetPortInaccessibleError, match="Target port inaccessible") as exc_info:
                await check_local_target(LocalTarget(bind="127.0.0.1", port=1), timeout=0.01)
        assert exc_info.value.context.startswith("Timed out connecting to")

    @pytest.fixture(autouse=True)
    def reachable_target(self) -> None:
        """Use the real probe in this class."""
        return None
