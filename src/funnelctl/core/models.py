"""Pydantic models for tailscaled's serve configuration document.

The serve config is owned by tailscaled and grows new fields between
releases. funnelctl only interprets Web, AllowFunnel and Foreground; every
other key (at any level we model) is kept in the model's extras and written
back exactly as it was read, so a read-modify-write never loses data.

Known fields that were absent on input stay absent on output. Unknown
fields are emitted unchanged, including explicit nulls.

Models:
- ServeConfig: Root document, also used for each Foreground session
- WebServerConfig: Handlers for one host:port
- HttpHandler: One of Proxy, Path or Text (plus extras)
- PathMapping: Flattened (path, target, funnel) used for conflict checks
"""

from __future__ import annotations

__all__ = [
    "FrozenModel",
    "HandlerKind",
    "HttpHandler",
    "PathMapping",
    "ServeConfig",
    "WebServerConfig",
]

from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    model_serializer,
)


class FrozenModel(BaseModel):
    """Base class for immutable Pydantic models."""

    model_config = ConfigDict(frozen=True)


class _WireModel(BaseModel):
    """Base for documents exchanged with tailscaled.

    Unknown keys are accepted and preserved. Known fields are only populated
    from their wire alias; a key spelled like the Python attribute name is
    an unknown key like any other. Serialization drops known fields whose
    value is None so they round-trip as "absent".
    """

    model_config = ConfigDict(extra="allow")

    @model_serializer(mode="wrap")
    def serialize_wire(
        self, handler: SerializerFunctionWrapHandler, info: SerializationInfo
    ) -> dict[str, Any]:
        data: dict[str, Any] = handler(self)
        for name, field in type(self).model_fields.items():
            if getattr(self, name) is None:
                data.pop(field.alias if info.by_alias and field.alias else name, None)
        return data

    def to_wire(self) -> dict[str, Any]:
        """Serialize using tailscaled's field names."""
        return self.model_dump(mode="json", by_alias=True)


class HandlerKind(str, Enum):
    """Which variant an HttpHandler holds."""

    PROXY = "proxy"
    PATH = "path"
    TEXT = "text"
    UNKNOWN = "unknown"


class HttpHandler(_WireModel):
    """Handler for one URL path.

    Exactly one of proxy, path or text is normally set. funnelctl only
    builds proxy handlers; the others are recognised for conflict messages.
    """

    proxy: str | None = Field(default=None, alias="Proxy")
    path: str | None = Field(default=None, alias="Path")
    text: str | None = Field(default=None, alias="Text")

    @classmethod
    def proxy_to(cls, target: str) -> HttpHandler:
        """Build a reverse-proxy handler for target."""
        return cls.model_validate({"Proxy": target})

    @property
    def kind(self) -> HandlerKind:
        if self.proxy is not None:
            return HandlerKind.PROXY
        if self.path is not None:
            return HandlerKind.PATH
        if self.text is not None:
            return HandlerKind.TEXT
        return HandlerKind.UNKNOWN

    def describe_target(self) -> str:
        """Target string used when comparing and reporting mappings."""
        if self.kind is HandlerKind.PROXY:
            return str(self.proxy)
        if self.kind is HandlerKind.PATH:
            return f"path handler {self.path}"
        if self.kind is HandlerKind.TEXT:
            return "text handler"
        return "non-proxy handler"


class WebServerConfig(_WireModel):
    """Serving configuration for one host:port."""

    handlers: dict[str, HttpHandler] | None = Field(default=None, alias="Handlers")

    @property
    def has_extras(self) -> bool:
        return bool(self.model_extra)


class ServeConfig(_WireModel):
    """Root serve config document (and each Foreground session's document).

    Attributes:
        tcp: Port -> TCP handler. Opaque to funnelctl.
        web: host:port -> WebServerConfig.
        allow_funnel: host:port -> whether Funnel is allowed.
        foreground: Session id -> that session's own ServeConfig. A null
            document is kept as None and treated as an empty config.
    """

    tcp: dict[str, Any] | None = Field(default=None, alias="TCP")
    web: dict[str, WebServerConfig] | None = Field(default=None, alias="Web")
    allow_funnel: dict[str, bool] | None = Field(default=None, alias="AllowFunnel")
    foreground: dict[str, ServeConfig | None] | None = Field(default=None, alias="Foreground")

    @classmethod
    def from_wire(cls, value: Any) -> ServeConfig:
        """Parse a decoded JSON body; null (no config yet) becomes empty.

        Raises:
            pydantic.ValidationError: Value does not have the expected shape.
        """
        if value is None:
            return cls()
        return cls.model_validate(value)

    def handlers_for(self, host_port: str) -> dict[str, HttpHandler] | None:
        if self.web is None:
            return None
        web_config = self.web.get(host_port)
        if web_config is None:
            return None
        return web_config.handlers

    def funnel_enabled_for(self, host_port: str) -> bool:
        if self.allow_funnel is None:
            return False
        return bool(self.allow_funnel.get(host_port, False))


ServeConfig.model_rebuild()


class PathMapping(FrozenModel):
    """A (path, target) pair for conflict detection.

    A path ending in "/" is a prefix mount; any other path matches only
    itself, even when it is a character prefix of another path.
    """

    path: str
    target: str
    funnel_enabled: bool = False

    def is_prefix_of(self, other: str) -> bool:
        """True if this mapping's path is a prefix mount covering other."""
        if not self.path.endswith("/"):
            return False
        return other.startswith(self.path)

    def has_prefix(self, other: str) -> bool:
        """True if other is a prefix mount covering this mapping's path."""
        if not other.endswith("/"):
            return False
        return self.path.startswith(other)
