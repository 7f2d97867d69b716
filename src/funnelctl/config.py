"""Transport selection settings for reaching tailscaled.

Built from CLI options (which also read FUNNELCTL_* environment variables
through click). Nothing is persisted: funnelctl keeps no config file.

Selection order, applied by funnelctl.backend.localapi.build_transport():
    1. --localapi-port with --localapi-password-file: TCP on 127.0.0.1
    2. --socket: that Unix socket (must exist)
    3. first existing well-known tailscaled socket
    4. otherwise tailscaled is unreachable

Example usage:
    config = LocalAPIConfig.from_options(socket=None, localapi_port=41112,
                                         localapi_password_file=Path("pw"))
    assert config.transport_mode is TransportMode.TCP
"""

from __future__ import annotations

__all__ = [
    "LocalAPIConfig",
    "TransportMode",
]

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from funnelctl.exceptions import InvalidArgumentError


class TransportMode(str, Enum):
    UNIX = "unix"
    TCP = "tcp"


class LocalAPIConfig(BaseModel):
    """How to reach the LocalAPI.

    Attributes:
        socket: Explicit Unix socket path, or None to probe the defaults.
        localapi_port: LocalAPI TCP port (selects TCP mode).
        localapi_password_file: Password file for TCP mode (mode 0600).
    """

    model_config = ConfigDict(frozen=True)

    socket: Path | None = None
    localapi_port: int | None = Field(default=None, ge=1, le=65535)
    localapi_password_file: Path | None = None

    @model_validator(mode="after")
    def _require_password_file_with_port(self) -> "LocalAPIConfig":
        if self.localapi_port is not None and self.localapi_password_file is None:
            raise ValueError("--localapi-password-file is required when using --localapi-port")
        return self

    @property
    def transport_mode(self) -> TransportMode:
        return TransportMode.TCP if self.localapi_port is not None else TransportMode.UNIX

    @classmethod
    def from_options(
        cls,
        socket: Path | None = None,
        localapi_port: int | None = None,
        localapi_password_file: Path | None = None,
    ) -> LocalAPIConfig:
        """Build from CLI option values.

        Raises:
            InvalidArgumentError: Options are inconsistent or out of range.
        """
        try:
            return cls(
                socket=socket,
                localapi_port=localapi_port,
                localapi_password_file=localapi_password_file,
            )
        except ValidationError as e:
            messages = [_clean_message(error["msg"]) for error in e.errors()]
            raise InvalidArgumentError("; ".join(messages)) from e


def _clean_message(message: str) -> str:
    # pydantic prefixes ValueError messages raised in validators
    return message.removeprefix("Value error, ")
