"""Application-wide constants for funnelctl.

Constants that define application behavior.
For per-invocation transport settings, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    # LocalAPI protocol
    "LOCALAPI_HOST",
    "LOCALAPI_TCP_HOST",
    "LOCALAPI_CAPABILITY_HEADER",
    "LOCALAPI_CAPABILITY_VALUE",
    "STATUS_ENDPOINT",
    "SERVE_CONFIG_ENDPOINT",
    "WATCH_IPN_BUS_ENDPOINT",
    "WATCH_INITIAL_STATE_MASK",
    "MAX_WATCH_LINE_BYTES",
    "SESSION_ID_KEYS",
    "EMPTY_BODY_PLACEHOLDER",
    # Daemon discovery
    "SOCKET_CANDIDATES",
    "MIN_SUPPORTED_VERSION",
    # Timeouts and retries
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "TARGET_PROBE_TIMEOUT_SECONDS",
    "MAX_APPLY_ATTEMPTS",
    # Tunnel defaults
    "DEFAULT_BIND",
    "DEFAULT_HTTPS_PORT",
    "ALLOWED_HTTPS_PORTS",
    "DEFAULT_PATH_PREFIX",
    "RANDOM_PATH_LENGTH",
    "MIN_PATH_LENGTH",
    "MIN_TTL_SECONDS",
    "WARN_TTL_SECONDS",
    # Output
    "EVENT_SCHEMA_VERSION",
    "BACKEND_KIND",
    "INTERRUPTED_EXIT_CODE",
    # Runtime directory
    "RUNTIME_DIR",
    "LOCK_FILENAME",
    # Environment variables
    "ENV_SOCKET",
    "ENV_LOCALAPI_PORT",
    "ENV_LOCALAPI_PASSWORD_FILE",
    "ENV_LOG_LEVEL",
]

from pathlib import Path

from platformdirs import user_runtime_dir

# ============================================================================
# Application Identity
# ============================================================================

APP_NAME: str = "funnelctl"

# ============================================================================
# LocalAPI Protocol
# ============================================================================

# Virtual host tailscaled expects on its Unix socket
LOCALAPI_HOST: str = "local-tailscaled.sock"

# TCP mode only ever talks to loopback
LOCALAPI_TCP_HOST: str = "127.0.0.1"

# Required on every TCP request (CSRF guard on the daemon side)
LOCALAPI_CAPABILITY_HEADER: str = "Sec-Tailscale"
LOCALAPI_CAPABILITY_VALUE: str = "localapi"

STATUS_ENDPOINT: str = "/localapi/v0/status"
SERVE_CONFIG_ENDPOINT: str = "/localapi/v0/serve-config"
WATCH_IPN_BUS_ENDPOINT: str = "/localapi/v0/watch-ipn-bus"

# Bit 1 of the watch mask asks for the initial state (includes the session id)
WATCH_INITIAL_STATE_MASK: int = 1 << 1

# Per-line cap on the watch stream
MAX_WATCH_LINE_BYTES: int = 1024 * 1024

# Field names the daemon has used for the session id across versions
SESSION_ID_KEYS: tuple[str, ...] = ("SessionID", "session_id", "sessionId")

EMPTY_BODY_PLACEHOLDER: str = "<empty>"

# ============================================================================
# Daemon Discovery
# ============================================================================

SOCKET_CANDIDATES: tuple[Path, ...] = (
    Path("/var/run/tailscale/tailscaled.sock"),
    Path("/run/tailscale/tailscaled.sock"),
)

# Oldest tailscaled with ETag support on serve-config
MIN_SUPPORTED_VERSION: tuple[int, int, int] = (1, 50, 0)

# ============================================================================
# Timeouts and Retries
# ============================================================================

DEFAULT_HTTP_TIMEOUT_SECONDS: float = 30.0

# Connect timeout for the local target liveness probe
TARGET_PROBE_TIMEOUT_SECONDS: float = 2.0

# Optimistic concurrency attempts against serve-config
MAX_APPLY_ATTEMPTS: int = 3

# ============================================================================
# Tunnel Defaults
# ============================================================================

DEFAULT_BIND: str = "127.0.0.1"
DEFAULT_HTTPS_PORT: int = 443
ALLOWED_HTTPS_PORTS: tuple[int, ...] = (443, 8443, 10000)

DEFAULT_PATH_PREFIX: str = "/funnelctl/"
RANDOM_PATH_LENGTH: int = 8

# Shorter paths are guessable
MIN_PATH_LENGTH: int = 8

MIN_TTL_SECONDS: int = 30
WARN_TTL_SECONDS: int = 5 * 60

# ============================================================================
# Output
# ============================================================================

EVENT_SCHEMA_VERSION: int = 1
BACKEND_KIND: str = "local_api"

# Conventional 128 + SIGINT
INTERRUPTED_EXIT_CODE: int = 130

# ============================================================================
# Runtime Directory
# ============================================================================

# Platform-specific:
# - Linux: $XDG_RUNTIME_DIR/funnelctl or /run/user/<uid>/funnelctl
# - macOS: ~/Library/Caches/TemporaryItems/funnelctl
RUNTIME_DIR: Path = Path(user_runtime_dir(APP_NAME))

LOCK_FILENAME: str = "funnelctl.lock"

# ============================================================================
# Environment Variables
# ============================================================================

ENV_SOCKET: str = "FUNNELCTL_SOCKET"
ENV_LOCALAPI_PORT: str = "FUNNELCTL_LOCALAPI_PORT"
ENV_LOCALAPI_PASSWORD_FILE: str = "FUNNELCTL_LOCALAPI_PASSWORD_FILE"
ENV_LOG_LEVEL: str = "FUNNELCTL_LOG"
