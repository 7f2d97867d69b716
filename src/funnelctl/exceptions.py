"""Custom exceptions for funnelctl.

Every user-facing failure is a FunnelError subclass. Each class carries a
stable process exit code, a short headline (its str()), the context that
explains what went wrong, and an optional remedy shown as "Fix:".

Exit codes:
    - 1: FunnelError (unclassified)
    - 2: InvalidArgumentError
    - 10: UnreachableError
    - 11: PermissionDeniedError
    - 12: PrerequisitesError
    - 13: ConflictError
    - 14: ApplyFailedError (ConcurrentModificationError)
    - 15: TargetPortInaccessibleError
    - 16: VersionTooOldError

Low-level LocalAPI protocol errors live in funnelctl.localapi.errors and are
translated into this taxonomy once, at the backend boundary.

Usage:
    from funnelctl.exceptions import ConflictError, FunnelError
"""

from __future__ import annotations

__all__ = [
    "ApplyFailedError",
    "ConcurrentModificationError",
    "ConflictError",
    "FunnelError",
    "InvalidArgumentError",
    "PermissionDeniedError",
    "PrerequisitesError",
    "TargetPortInaccessibleError",
    "UnreachableError",
    "VersionTooOldError",
]

import click


class FunnelError(Exception):
    """Base exception for funnelctl failures.

    The base class doubles as the "other" category: the context is the
    whole message and no remedy is offered.

    Attributes:
        exit_code: Process exit code for this failure category.
        error_kind: Category string for logs and machine output.
        headline: Short summary rendered by str(); None means use context.
        remedy: Suggested fix shown to the user, if any.
        context: Detail explaining this particular failure.
    """

    exit_code: int = 1
    error_kind: str = "other"
    headline: str | None = None
    remedy: str | None = None

    def __init__(self, context: str) -> None:
        super().__init__(context)
        self.context = context

    def __str__(self) -> str:
        return self.headline or self.context

    def format_detailed(self) -> str:
        """Render the Error/Cause/Fix block shown on stderr.

        Returns:
            Multi-line string. Labels are styled with click and stripped
            automatically when the stream is not a terminal.
        """
        lines = [f"{click.style('Error:', fg='red', bold=True)} {self}"]
        if self.context:
            lines.append(f"{click.style('Cause:', fg='yellow', bold=True)} {self.context}")
        if self.remedy:
            lines.append(f"{click.style('Fix:', fg='green', bold=True)} {self.remedy}")
        return "\n".join(lines)


class InvalidArgumentError(FunnelError):
    """User input was rejected before any daemon interaction."""

    exit_code = 2
    error_kind = "invalid_argument"

    def __str__(self) -> str:
        return f"Invalid argument: {self.context}"


class UnreachableError(FunnelError):
    """LocalAPI could not be reached (no socket, connection refused)."""

    exit_code = 10
    error_kind = "unreachable"
    headline = "LocalAPI unreachable"
    remedy = "Is tailscaled running? Try: sudo systemctl start tailscaled"


class PermissionDeniedError(FunnelError):
    """LocalAPI rejected our credentials (401/403)."""

    exit_code = 11
    error_kind = "permission"
    headline = "Permission denied"
    remedy = "Run with sudo or add your user to the operator group"


class PrerequisitesError(FunnelError):
    """Node is not ready for Funnel (no DNS name, HTTPS or Funnel policy)."""

    exit_code = 12
    error_kind = "prerequisites"
    headline = "Prerequisites not met"
    remedy = "Run 'funnelctl doctor' to diagnose the issue"


class ConflictError(FunnelError):
    """Requested route collides with an existing one, or another instance runs."""

    exit_code = 13
    error_kind = "conflict"
    headline = "Configuration conflict"
    remedy = "Use a different --path or add --force to override"


class ApplyFailedError(FunnelError):
    """Daemon refused or failed the configuration change."""

    exit_code = 14
    error_kind = "apply_failed"
    headline = "Apply operation failed"
    remedy = (
        "Check tailscaled logs for more details. "
        "Route may still exist; run `tailscale serve off` to clean up."
    )


class ConcurrentModificationError(ApplyFailedError):
    """Serve config kept changing underneath us for every attempt."""

    error_kind = "concurrent_modification"


class TargetPortInaccessibleError(FunnelError):
    """Nothing is listening on the local target."""

    exit_code = 15
    error_kind = "target_port_inaccessible"
    headline = "Target port inaccessible"
    remedy = "Start your service before running funnelctl"


class VersionTooOldError(FunnelError):
    """tailscaled lacks a feature this tool depends on."""

    exit_code = 16
    error_kind = "version_too_old"
    headline = "Version too old"
    remedy = "Upgrade tailscaled. See https://tailscale.com/download"
