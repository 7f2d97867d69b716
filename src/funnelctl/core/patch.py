"""Route conflict detection and serve config patching.

All functions here are pure with respect to I/O: they inspect or mutate an
in-memory ServeConfig and never talk to tailscaled.

Conflict rules for a proposed (path, target) at one host:port, checked
against each existing handler in document order:

1. Same path, same target: idempotent if Funnel is on for both the existing
   and the new mapping, otherwise a harmless no-op.
2. Same path, different target: conflict.
3. Existing path is a prefix mount ("/api/") covering the new path: conflict.
4. New path is a prefix mount covering an existing path: conflict.

Only paths ending in "/" act as prefixes, so "/api" never captures "/api/v1".
"""

from __future__ import annotations

__all__ = [
    "ConflictCheck",
    "ConflictKind",
    "RouteConflict",
    "apply_patch",
    "detect_conflict",
    "remove_patch",
]

from enum import Enum

from funnelctl.core.models import HttpHandler, PathMapping, ServeConfig, WebServerConfig


class ConflictCheck(str, Enum):
    """Non-conflicting outcomes of detect_conflict."""

    NONE = "none"
    IDEMPOTENT = "idempotent"


class ConflictKind(str, Enum):
    EXACT_PATH_DIFFERENT_TARGET = "exact_path_different_target"
    CAPTURED_BY_EXISTING_PREFIX = "captured_by_existing_prefix"
    NEW_PREFIX_CAPTURES_EXISTING = "new_prefix_captures_existing"


class RouteConflict(Exception):
    """A proposed mapping collides with an existing handler.

    Attributes:
        kind: Which rule matched.
        new_path: Path being proposed.
        existing_path: Path of the existing handler involved.
        existing_target: Target of the existing handler involved.
        new_target: Target being proposed.
    """

    def __init__(
        self,
        kind: ConflictKind,
        *,
        new_path: str,
        existing_path: str,
        existing_target: str,
        new_target: str,
    ) -> None:
        self.kind = kind
        self.new_path = new_path
        self.existing_path = existing_path
        self.existing_target = existing_target
        self.new_target = new_target
        super().__init__(self.describe())

    def describe(self) -> str:
        """Human-readable explanation of the conflict."""
        if self.kind is ConflictKind.EXACT_PATH_DIFFERENT_TARGET:
            return (
                f"path '{self.new_path}' already maps to '{self.existing_target}', "
                f"but new mapping targets '{self.new_target}'"
            )
        if self.kind is ConflictKind.CAPTURED_BY_EXISTING_PREFIX:
            return (
                f"new path '{self.new_path}' would be captured by existing prefix "
                f"'{self.existing_path}' (targets '{self.existing_target}')"
            )
        return (
            f"new prefix '{self.new_path}' would capture existing path "
            f"'{self.existing_path}' (targets '{self.existing_target}')"
        )


def detect_conflict(
    config: ServeConfig,
    host_port: str,
    new_path: str,
    new_target: str,
    funnel_enabled: bool,
) -> ConflictCheck:
    """Check a proposed mapping against the handlers at host_port.

    Args:
        config: Document to inspect (top-level or one session's).
        host_port: "<dns name>:<https port>" key.
        new_path: Normalized URL path being proposed.
        new_target: Local target URL being proposed.
        funnel_enabled: Whether the proposed mapping is public.

    Returns:
        ConflictCheck.NONE or ConflictCheck.IDEMPOTENT.

    Raises:
        RouteConflict: The first existing handler that collides.
    """
    handlers = config.handlers_for(host_port)
    if not handlers:
        return ConflictCheck.NONE

    existing_funnel = config.funnel_enabled_for(host_port)
    proposed = PathMapping(path=new_path, target=new_target, funnel_enabled=funnel_enabled)

    for path, handler in handlers.items():
        existing = PathMapping(
            path=path,
            target=handler.describe_target(),
            funnel_enabled=existing_funnel,
        )

        if existing.path == proposed.path:
            if existing.target == proposed.target:
                if existing.funnel_enabled and proposed.funnel_enabled:
                    return ConflictCheck.IDEMPOTENT
                return ConflictCheck.NONE
            raise RouteConflict(
                ConflictKind.EXACT_PATH_DIFFERENT_TARGET,
                new_path=new_path,
                existing_path=existing.path,
                existing_target=existing.target,
                new_target=new_target,
            )

        if existing.is_prefix_of(new_path):
            raise RouteConflict(
                ConflictKind.CAPTURED_BY_EXISTING_PREFIX,
                new_path=new_path,
                existing_path=existing.path,
                existing_target=existing.target,
                new_target=new_target,
            )

        if existing.has_prefix(new_path):
            raise RouteConflict(
                ConflictKind.NEW_PREFIX_CAPTURES_EXISTING,
                new_path=new_path,
                existing_path=existing.path,
                existing_target=existing.target,
                new_target=new_target,
            )

    return ConflictCheck.NONE


def apply_patch(
    config: ServeConfig,
    session_id: str,
    host_port: str,
    path: str,
    target: str,
    funnel_enabled: bool,
) -> None:
    """Install a proxy handler under Foreground[session_id], in place.

    Creates the session document, its Web entry and Handlers map as needed.
    AllowFunnel[host_port] is set to True in the session document only when
    funnel_enabled; it is never cleared. Nothing outside the session's
    document is touched.
    """
    if config.foreground is None:
        config.foreground = {}
    session = config.foreground.get(session_id)
    if session is None:
        session = config.foreground[session_id] = ServeConfig()

    if session.web is None:
        session.web = {}
    web_config = session.web.setdefault(host_port, WebServerConfig())

    if web_config.handlers is None:
        web_config.handlers = {}
    web_config.handlers[path] = HttpHandler.proxy_to(target)

    if funnel_enabled:
        if session.allow_funnel is None:
            session.allow_funnel = {}
        session.allow_funnel[host_port] = True


def remove_patch(config: ServeConfig, session_id: str, host_port: str, path: str) -> bool:
    """Remove the handler installed by apply_patch, pruning empty containers.

    Handlers becomes absent once empty; the host:port entry is dropped once it
    has neither handlers nor unknown fields; Web becomes absent once empty.

    Returns:
        True if a handler was removed. False when the session, host:port or
        path does not exist.
    """
    if config.foreground is None:
        return False
    session = config.foreground.get(session_id)
    if session is None or session.web is None:
        return False
    web_config = session.web.get(host_port)
    if web_config is None or web_config.handlers is None:
        return False

    removed = web_config.handlers.pop(path, None) is not None

    if not web_config.handlers:
        web_config.handlers = None
    if web_config.handlers is None and not web_config.has_extras:
        del session.web[host_port]
    if not session.web:
        session.web = None

    return removed
