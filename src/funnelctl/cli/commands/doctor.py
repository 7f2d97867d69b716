"""Doctor command for funnelctl CLI.

Checks whether this machine can open Funnel tunnels and explains what is
missing. Exits 0 when every check passes, otherwise with the exit code of
the most fundamental failure.
"""

from __future__ import annotations

__all__ = ["doctor"]

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path

import click

from funnelctl.backend.base import Backend, BackendStatus, UnreachableBackend
from funnelctl.backend.localapi import LocalAPIBackend, build_transport, parse_version
from funnelctl.config import LocalAPIConfig, TransportMode
from funnelctl.constants import MIN_SUPPORTED_VERSION
from funnelctl.exceptions import (
    FunnelError,
    PermissionDeniedError,
    PrerequisitesError,
    UnreachableError,
    VersionTooOldError,
)

from ..options import localapi_options
from ..output import exit_with_error
from ..styling import style_check

# Most fundamental first: nothing else matters if tailscaled is unreachable
EXIT_CODE_PRIORITY = (10, 11, 16, 12, 13, 14, 15, 2, 1)

_MIN_VERSION_TEXT = ".".join(str(part) for part in MIN_SUPPORTED_VERSION)

# Checks that need a status response, with the reason they cannot run
_DEPENDENT_CHECKS = (
    ("tailscaled version", "Cannot check version"),
    ("Permissions", "Cannot check permissions"),
    ("HTTPS enabled", "Cannot check HTTPS"),
    ("Funnel capability", "Cannot check Funnel capability"),
    ("DNS name available", "Cannot check DNS name"),
)


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one doctor check.

    Attributes:
        name: Check name shown to the user.
        passed: Whether the check passed.
        message: Detail or remedy.
        exit_code: Exit code this failure maps to (None when passed).
    """

    name: str
    passed: bool
    message: str
    exit_code: int | None = None


@click.command("doctor")
@localapi_options
def doctor(
    socket: Path | None,
    localapi_port: int | None,
    localapi_password_file: Path | None,
) -> None:
    """Check Funnel prerequisites.

    Verifies tailscaled is reachable, recent enough, lets you change the
    serve config, and that HTTPS and Funnel are enabled for this node.

    Examples:
        funnelctl doctor
        funnelctl doctor --localapi-port 41112 --localapi-password-file ~/.ts-pw
    """
    try:
        config = LocalAPIConfig.from_options(
            socket=socket,
            localapi_port=localapi_port,
            localapi_password_file=localapi_password_file,
        )
        backend = _create_backend(config)
    except FunnelError as e:
        exit_with_error(e)

    tcp_mode = config.transport_mode is TransportMode.TCP
    checks = asyncio.run(run_checks(backend, tcp_mode))

    for check in checks:
        click.echo(style_check(check.name, check.passed, check.message))

    exit_code = select_exit_code(checks)
    if exit_code:
        sys.exit(exit_code)


def _create_backend(config: LocalAPIConfig) -> Backend:
    """Backend for the checks; an unreachable socket still yields a report.

    In TCP mode every transport failure is fatal, since the port and
    password were given explicitly.
    """
    try:
        return LocalAPIBackend.from_transport(build_transport(config))
    except UnreachableError as e:
        if config.transport_mode is TransportMode.TCP:
            raise
        return UnreachableBackend(e.context)


async def run_checks(backend: Backend, tcp_mode: bool) -> list[CheckResult]:
    """Query the backend once and evaluate every check against the result."""
    try:
        status: BackendStatus | None = await backend.status()
        error: FunnelError | None = None
    except FunnelError as e:
        status = None
        error = e
    finally:
        await backend.aclose()

    permission_denied = isinstance(error, PermissionDeniedError)

    checks = [_check_reachable(error)]
    if tcp_mode:
        checks.append(_check_localapi_auth(error))

    if status is not None:
        checks.extend(
            [
                _check_version(status),
                _check_permissions(status),
                _check_https(status),
                _check_funnel(status),
                _check_dns_name(status),
            ]
        )
        return checks

    reason = "permission denied" if permission_denied else "tailscaled unreachable"
    code = PermissionDeniedError.exit_code if permission_denied else UnreachableError.exit_code
    for name, prefix in _DEPENDENT_CHECKS:
        if permission_denied and name == "Permissions":
            checks.append(
                CheckResult(name, False, "Permission denied; need root or operator group", code)
            )
            continue
        checks.append(CheckResult(name, False, f"{prefix} ({reason})", code))
    return checks


def select_exit_code(checks: list[CheckResult]) -> int:
    """Pick the exit code of the most fundamental failed check (0 if none)."""
    failed = {check.exit_code for check in checks if not check.passed and check.exit_code}
    for code in EXIT_CODE_PRIORITY:
        if code in failed:
            return code
    return min(failed) if failed else 0


def _check_reachable(error: FunnelError | None) -> CheckResult:
    name = "tailscaled reachable"
    if error is None or isinstance(error, PermissionDeniedError):
        return CheckResult(name, True, "Socket exists and responds")
    return CheckResult(name, False, "tailscaled not running", UnreachableError.exit_code)


def _check_localapi_auth(error: FunnelError | None) -> CheckResult:
    name = "LocalAPI auth"
    if error is None:
        return CheckResult(name, True, "Password accepted")
    if isinstance(error, PermissionDeniedError):
        return CheckResult(name, False, "Invalid LocalAPI password", PermissionDeniedError.exit_code)
    return CheckResult(
        name, False, "Cannot check (tailscaled unreachable)", UnreachableError.exit_code
    )


def _check_version(status: BackendStatus) -> CheckResult:
    name = "tailscaled version"
    if status.version is None:
        return CheckResult(name, False, "Version unknown", VersionTooOldError.exit_code)
    parsed = parse_version(status.version)
    if parsed is not None and parsed >= MIN_SUPPORTED_VERSION:
        return CheckResult(name, True, f"Version {status.version} (>= {_MIN_VERSION_TEXT})")
    return CheckResult(
        name,
        False,
        f"tailscaled too old (got {status.version}, need {_MIN_VERSION_TEXT}+)",
        VersionTooOldError.exit_code,
    )


def _check_permissions(status: BackendStatus) -> CheckResult:
    name = "Permissions"
    code = PermissionDeniedError.exit_code
    if status.permissions_ok is True:
        return CheckResult(name, True, "Can read/write ServeConfig")
    if status.permissions_ok is False:
        return CheckResult(name, False, "Permission denied; need root or operator group", code)
    return CheckResult(name, False, "Permission check unavailable", code)


def _check_https(status: BackendStatus) -> CheckResult:
    name = "HTTPS enabled"
    if status.https_enabled:
        return CheckResult(name, True, "Node has HTTPS cert")
    return CheckResult(
        name, False, "HTTPS not enabled. Run `tailscale cert`", PrerequisitesError.exit_code
    )


def _check_funnel(status: BackendStatus) -> CheckResult:
    name = "Funnel capability"
    if status.funnel_enabled:
        return CheckResult(name, True, "Tailnet allows Funnel")
    return CheckResult(
        name, False, "Funnel not enabled in tailnet policy", PrerequisitesError.exit_code
    )


def _check_dns_name(status: BackendStatus) -> CheckResult:
    name = "DNS name available"
    if status.dns_name:
        return CheckResult(name, True, f"Node name: {status.dns_name}")
    return CheckResult(name, False, "Node not yet assigned DNS name", PrerequisitesError.exit_code)
