"""Open command for funnelctl CLI.

Publishes a local port through Funnel until Ctrl-C or the TTL runs out,
then tears the tunnel down.
"""

from __future__ import annotations

__all__ = ["open_tunnel"]

import asyncio
import signal
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import click

from funnelctl.backend.base import Backend
from funnelctl.backend.localapi import LocalAPIBackend, build_transport
from funnelctl.config import LocalAPIConfig
from funnelctl.constants import DEFAULT_BIND, DEFAULT_HTTPS_PORT, INTERRUPTED_EXIT_CODE
from funnelctl.core.spec import LocalTarget, TunnelResult, TunnelSpec
from funnelctl.core.validation import (
    PathTooShortWarning,
    TtlTooShortWarning,
    ValidationWarning,
    generate_random_path,
    parse_ttl,
    resolve_bind,
    validate_https_port,
    validate_path,
    validate_port,
    validate_ttl,
)
from funnelctl.exceptions import ApplyFailedError, FunnelError
from funnelctl.utils.lock import ProcessLock
from funnelctl.utils.logging import get_logger

from ..options import localapi_options
from ..output import (
    StartedEvent,
    StopReason,
    StoppedEvent,
    emit_event,
    exit_with_error,
    format_duration,
    print_started,
    print_stopped,
)
from ..styling import style_warning

_logger = get_logger()


class _ForcedExit(Exception):
    """Second interrupt arrived while tearing down."""


@click.command("open")
@click.argument("port", type=int)
@click.option(
    "--bind",
    default=DEFAULT_BIND,
    show_default=True,
    metavar="IP",
    help="Bind IP (127.0.0.1, ::1, localhost)",
)
@click.option("--path", "path", metavar="PATH", help="URL path (default: /funnelctl/<random>)")
@click.option(
    "--https-port",
    type=int,
    default=DEFAULT_HTTPS_PORT,
    show_default=True,
    metavar="PORT",
    help="Public HTTPS port (443, 8443, or 10000)",
)
@click.option("--ttl", metavar="DURATION", help="Keep tunnel up for duration (e.g. 30m), then tear down")
@click.option("--force", is_flag=True, help="Allow overwriting conflicting serve routes")
@click.option("--json", "as_json", is_flag=True, help="NDJSON output for scripting")
@localapi_options
@click.option("--allow-non-loopback", is_flag=True, help="Allow non-loopback bind addresses")
def open_tunnel(
    port: int,
    bind: str,
    path: str | None,
    https_port: int,
    ttl: str | None,
    force: bool,
    as_json: bool,
    socket: Path | None,
    localapi_port: int | None,
    localapi_password_file: Path | None,
    allow_non_loopback: bool,
) -> None:
    """Open a public HTTPS tunnel to a local port.

    The tunnel stays up until Ctrl-C (or until --ttl elapses) and is removed
    when funnelctl exits.

    Examples:
        funnelctl open 8081                    # Quick tunnel with random path
        funnelctl open 8081 --path /webhook    # Custom path
        funnelctl open 8081 --ttl 30m          # Auto-expire after 30 minutes
    """
    try:
        spec, ttl_delta, warnings = _build_spec(
            port, bind, path, https_port, ttl, allow_non_loopback
        )
        if not as_json:
            for warning in warnings:
                click.echo(style_warning(_describe_warning(warning)), err=True)

        config = LocalAPIConfig.from_options(
            socket=socket,
            localapi_port=localapi_port,
            localapi_password_file=localapi_password_file,
        )
        backend = _create_backend(config, force)
        asyncio.run(_run_tunnel(backend, spec, ttl_delta, as_json))
    except FunnelError as e:
        exit_with_error(e, as_json)
    except (_ForcedExit, KeyboardInterrupt):
        sys.exit(INTERRUPTED_EXIT_CODE)


def _build_spec(
    port: int,
    bind: str,
    path: str | None,
    https_port: int,
    ttl: str | None,
    allow_non_loopback: bool,
) -> tuple[TunnelSpec, timedelta | None, list[ValidationWarning]]:
    """Validate user input into a TunnelSpec.

    Returns:
        The spec, the parsed TTL (if any) and warnings to show the user.

    Raises:
        InvalidArgumentError: Any input is rejected.
    """
    validate_port(port)
    validate_https_port(https_port)
    bind_ip = resolve_bind(bind, allow_non_loopback)

    path_result = validate_path(path if path is not None else generate_random_path())
    warnings = list(path_result.warnings)

    ttl_delta: timedelta | None = None
    if ttl is not None:
        ttl_result = validate_ttl(parse_ttl(ttl))
        ttl_delta = ttl_result.ttl
        warnings.extend(ttl_result.warnings)

    spec = TunnelSpec(
        local_target=LocalTarget(bind=bind_ip, port=port),
        https_port=https_port,
        path=path_result.normalized_path,
        funnel=True,
    )
    return spec, ttl_delta, warnings


def _describe_warning(warning: ValidationWarning) -> str:
    if isinstance(warning, PathTooShortWarning):
        return (
            f"Short path '{warning.path}' is guessable. "
            "Consider a longer path or use default random path."
        )
    if isinstance(warning, TtlTooShortWarning):
        return f"Short TTL ({format_duration(warning.ttl)}). Tunnel expires quickly."
    return str(warning)


def _create_backend(config: LocalAPIConfig, force: bool) -> Backend:
    return LocalAPIBackend.from_transport(build_transport(config), force=force)


async def _run_tunnel(
    backend: Backend,
    spec: TunnelSpec,
    ttl: timedelta | None,
    as_json: bool,
) -> None:
    """Apply, wait for a stop condition, tear down."""
    interrupted = asyncio.Event()
    loop = asyncio.get_running_loop()

    try:
        with ProcessLock():
            result = await backend.apply(spec)

        expires_at = result.applied_at + ttl if ttl is not None else None
        _report_started(spec, result, expires_at, as_json)

        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, interrupted.set)

        reason = await _wait_for_stop(interrupted, ttl)
        if reason is StopReason.TTL_EXPIRED and ttl is not None and not as_json:
            click.echo(f"TTL expired ({format_duration(ttl)}). Tearing down tunnel.", err=True)

        interrupted.clear()
        await _teardown(backend, result.lease_id, interrupted)

        stopped_at = datetime.now(timezone.utc)
        duration_seconds = max(int((stopped_at - result.applied_at).total_seconds()), 0)
        if as_json:
            emit_event(
                StoppedEvent(reason=reason, stopped_at=stopped_at, duration_seconds=duration_seconds)
            )
        else:
            print_stopped(reason, duration_seconds)
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        await backend.aclose()


def _report_started(
    spec: TunnelSpec,
    result: TunnelResult,
    expires_at: datetime | None,
    as_json: bool,
) -> None:
    local_target = str(spec.local_target)
    if as_json:
        emit_event(
            StartedEvent(
                url=result.url,
                local_target=local_target,
                path=spec.path,
                https_port=spec.https_port,
                started_at=result.applied_at,
                expires_at=expires_at,
            )
        )
    else:
        print_started(result.url, local_target, expires_at)


async def _wait_for_stop(interrupted: asyncio.Event, ttl: timedelta | None) -> StopReason:
    """Block until an interrupt or TTL expiry, whichever comes first."""
    timeout = ttl.total_seconds() if ttl is not None else None
    try:
        await asyncio.wait_for(interrupted.wait(), timeout)
    except TimeoutError:
        return StopReason.TTL_EXPIRED
    return StopReason.USER_INTERRUPT


async def _teardown(backend: Backend, lease_id: str, interrupted: asyncio.Event) -> None:
    """Remove the tunnel unless interrupted again.

    Raises:
        _ForcedExit: Interrupted again before removal finished.
        ApplyFailedError: Removal failed.
    """
    remove_task = asyncio.ensure_future(backend.remove(lease_id))
    interrupt_task = asyncio.ensure_future(interrupted.wait())
    try:
        done, _ = await asyncio.wait(
            {remove_task, interrupt_task}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        interrupt_task.cancel()

    if remove_task not in done:
        remove_task.cancel()
        raise _ForcedExit()

    try:
        remove_task.result()
    except FunnelError as e:
        _logger.error(
            {
                "event": "teardown_failed",
                "message": f"Failed to tear down tunnel {lease_id}: {e.context}",
                "lease_id": lease_id,
            }
        )
        raise ApplyFailedError("Failed to tear down tunnel") from e
