"""Validation and normalization of user input for `funnelctl open`.

Validators raise InvalidArgumentError for input that must be rejected and
return warnings for input that is allowed but risky (short paths, short
TTLs). The CLI decides how to show warnings.
"""

from __future__ import annotations

__all__ = [
    "PathTooShortWarning",
    "PathValidationResult",
    "TtlTooShortWarning",
    "TtlValidationResult",
    "ValidationWarning",
    "generate_random_path",
    "parse_ttl",
    "resolve_bind",
    "validate_https_port",
    "validate_path",
    "validate_port",
    "validate_ttl",
]

import ipaddress
import re
import secrets
import socket
import string
from datetime import timedelta

from funnelctl.constants import (
    ALLOWED_HTTPS_PORTS,
    DEFAULT_PATH_PREFIX,
    MIN_PATH_LENGTH,
    MIN_TTL_SECONDS,
    RANDOM_PATH_LENGTH,
    WARN_TTL_SECONDS,
)
from funnelctl.core.models import FrozenModel
from funnelctl.exceptions import InvalidArgumentError

_DURATION_UNITS: dict[str, int] = {
    "s": 1,
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hr": 3600,
    "hrs": 3600,
    "hour": 3600,
    "hours": 3600,
    "d": 86400,
    "day": 86400,
    "days": 86400,
}

_DURATION_PART = re.compile(r"(\d+)\s*([a-z]+)")

_RANDOM_PATH_ALPHABET = string.ascii_letters + string.digits


class ValidationWarning(FrozenModel):
    """Base class for accepted-but-risky input."""


class PathTooShortWarning(ValidationWarning):
    path: str
    length: int


class TtlTooShortWarning(ValidationWarning):
    ttl: timedelta


class PathValidationResult(FrozenModel):
    normalized_path: str
    warnings: tuple[ValidationWarning, ...] = ()


class TtlValidationResult(FrozenModel):
    ttl: timedelta
    warnings: tuple[ValidationWarning, ...] = ()


def validate_path(path: str) -> PathValidationResult:
    """Validate and normalize a public URL path.

    Rules:
    - Must start with "/"
    - No control characters (bytes below 0x20)
    - No ".." segments ("a..b" inside a segment is fine)
    - Runs of "/" collapse to one; a trailing "/" is kept
    - Normalized paths shorter than 8 characters are accepted with a warning

    Args:
        path: Path as given on the command line.

    Returns:
        PathValidationResult with the normalized path and any warnings.

    Raises:
        InvalidArgumentError: Path violates a rule.
    """
    if not path.startswith("/"):
        raise InvalidArgumentError("path must start with '/'")

    if any(ord(ch) < 0x20 for ch in path):
        raise InvalidArgumentError("path contains control characters")

    if any(segment == ".." for segment in path.split("/")):
        raise InvalidArgumentError("path cannot contain '..' segments")

    normalized = re.sub(r"/{2,}", "/", path)

    warnings: list[ValidationWarning] = []
    if len(normalized) < MIN_PATH_LENGTH:
        warnings.append(PathTooShortWarning(path=normalized, length=len(normalized)))

    return PathValidationResult(normalized_path=normalized, warnings=tuple(warnings))


def validate_ttl(ttl: timedelta) -> TtlValidationResult:
    """Validate a tunnel lifetime.

    Raises:
        InvalidArgumentError: TTL is below 30 seconds.
    """
    seconds = int(ttl.total_seconds())
    if ttl < timedelta(seconds=MIN_TTL_SECONDS):
        raise InvalidArgumentError(
            f"TTL must be at least {MIN_TTL_SECONDS} seconds, got {seconds} seconds"
        )

    warnings: list[ValidationWarning] = []
    if ttl < timedelta(seconds=WARN_TTL_SECONDS):
        warnings.append(TtlTooShortWarning(ttl=ttl))

    return TtlValidationResult(ttl=ttl, warnings=tuple(warnings))


def parse_ttl(text: str) -> timedelta:
    """Parse a human duration such as "90s", "30m", "1h 30m" or "600".

    A bare number is seconds.

    Raises:
        InvalidArgumentError: Text is not a duration.
    """
    value = text.strip().lower()
    if not value:
        raise InvalidArgumentError("TTL must not be empty")
    if value.isdigit():
        return timedelta(seconds=int(value))

    total = 0
    position = 0
    for match in _DURATION_PART.finditer(value):
        if value[position : match.start()].strip():
            break
        amount, unit = match.groups()
        if unit not in _DURATION_UNITS:
            raise InvalidArgumentError(f"Invalid TTL '{text}': unknown unit '{unit}'")
        total += int(amount) * _DURATION_UNITS[unit]
        position = match.end()

    if position == 0 or value[position:].strip():
        raise InvalidArgumentError(f"Invalid TTL '{text}'. Use a duration like 30m, 1h or 90s")
    return timedelta(seconds=total)


def validate_port(port: int) -> None:
    """Reject ports outside 1-65535."""
    if not 1 <= port <= 65535:
        raise InvalidArgumentError("port must be between 1 and 65535")


def validate_https_port(port: int) -> None:
    """Reject public ports Funnel does not serve on."""
    if port not in ALLOWED_HTTPS_PORTS:
        allowed = ", ".join(str(p) for p in ALLOWED_HTTPS_PORTS)
        raise InvalidArgumentError(f"HTTPS port must be one of [{allowed}], got {port}")


def generate_random_path() -> str:
    """Unguessable default path, e.g. "/funnelctl/a8Kq2ZxP"."""
    suffix = "".join(secrets.choice(_RANDOM_PATH_ALPHABET) for _ in range(RANDOM_PATH_LENGTH))
    return f"{DEFAULT_PATH_PREFIX}{suffix}"


def resolve_bind(bind: str, allow_non_loopback: bool) -> str:
    """Resolve the local bind address to an IP literal.

    "localhost" is resolved, preferring an IPv4 answer. Anything else must
    be an IP literal. Non-loopback addresses require explicit opt-in.

    Args:
        bind: Address from --bind.
        allow_non_loopback: Value of --allow-non-loopback.

    Returns:
        The IP address as a string.

    Raises:
        InvalidArgumentError: Address is invalid or non-loopback without opt-in.
    """
    if bind.lower() == "localhost":
        address = _resolve_localhost()
    else:
        try:
            address = ipaddress.ip_address(bind.strip("[]"))
        except ValueError:
            raise InvalidArgumentError(
                f"Invalid bind address '{bind}'. Use 127.0.0.1, ::1, or localhost"
            ) from None

    if not address.is_loopback and not allow_non_loopback:
        raise InvalidArgumentError("Non-loopback bind requires --allow-non-loopback")

    return str(address)


def _resolve_localhost() -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    try:
        infos = socket.getaddrinfo("localhost", None, proto=socket.IPPROTO_TCP)
    except socket.gaierror as e:
        raise InvalidArgumentError(f"Failed to resolve localhost: {e}") from e

    addresses = [ipaddress.ip_address(info[4][0].split("%", 1)[0]) for info in infos]
    if not addresses:
        raise InvalidArgumentError("Failed to resolve localhost")
    for address in addresses:
        if address.version == 4:
            return address
    return addresses[0]
