"""CLI output styling utilities.

Provides consistent styling helpers for CLI output:
- Green bold check mark for passing doctor checks
- Red bold cross for failing doctor checks
- Yellow for warnings about risky but accepted input

click strips the ANSI codes automatically when output is not a terminal.
"""

from __future__ import annotations

__all__ = [
    "style_check",
    "style_warning",
]

import click


def style_check(name: str, passed: bool, message: str) -> str:
    """Style one doctor check line.

    Args:
        name: Check name.
        passed: Whether the check passed.
        message: Result detail.

    Returns:
        Styled string in format "<mark> name: message".

    Example:
        >>> click.echo(style_check("HTTPS enabled", True, "Node has HTTPS cert"))
        ✓ HTTPS enabled: Node has HTTPS cert
    """
    if passed:
        mark = click.style("✓", fg="green", bold=True)
    else:
        mark = click.style("✗", fg="red", bold=True)
    return f"{mark} {name}: {message}"


def style_warning(message: str) -> str:
    """Style a warning message with yellow color.

    Args:
        message: The warning message text.

    Returns:
        Styled string with yellow bold "Warning:" prefix.

    Example:
        >>> click.echo(style_warning("Short TTL (1m). Tunnel expires quickly."), err=True)
        Warning: Short TTL (1m). Tunnel expires quickly.
    """
    return f"{click.style('Warning:', fg='yellow', bold=True)} {message}"
