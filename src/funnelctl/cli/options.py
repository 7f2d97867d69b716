"""Options shared by commands that talk to tailscaled."""

from __future__ import annotations

__all__ = [
    "localapi_options",
]

from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import click

from funnelctl.constants import ENV_LOCALAPI_PASSWORD_FILE, ENV_LOCALAPI_PORT, ENV_SOCKET

F = TypeVar("F", bound=Callable[..., Any])


def localapi_options(func: F) -> F:
    """Add --socket, --localapi-port and --localapi-password-file."""
    func = click.option(
        "--localapi-password-file",
        type=click.Path(dir_okay=False, path_type=Path),
        envvar=ENV_LOCALAPI_PASSWORD_FILE,
        metavar="PATH",
        help="File containing LocalAPI password (0600 permissions)",
    )(func)
    func = click.option(
        "--localapi-port",
        type=click.IntRange(1, 65535),
        envvar=ENV_LOCALAPI_PORT,
        metavar="PORT",
        help="LocalAPI TCP port (macOS/Windows)",
    )(func)
    func = click.option(
        "--socket",
        type=click.Path(dir_okay=False, path_type=Path),
        envvar=ENV_SOCKET,
        metavar="PATH",
        help="Unix socket path override",
    )(func)
    return func
