"""Application-wide constants for logtap.

Constants that define relay behavior and the wire format.
For user-configurable settings per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    "APP_CONFIG_DIR",
    # Relay endpoint
    "RELAY_PATH",
    "DEFAULT_RELAY_HOST",
    "DEFAULT_RELAY_PORT",
    "MIN_PORT",
    "MAX_PORT",
    "DEFAULT_RANDOM_PORT_RETRIES",
    "RELAY_LISTEN_BACKLOG",
    "RELAY_SHUTDOWN_TIMEOUT_SECONDS",
    # Wire format
    "THREAD_PLACEHOLDER",
    "ROOT_LOGGER",
    "WELCOME_MESSAGE",
    # Environment variables
    "ENV_CONFIG_PATH",
    "ENV_DISABLED",
    "ENV_HOST",
    "ENV_PORT",
]

from platformdirs import user_config_dir

# ============================================================================
# Application Identity
# ============================================================================

APP_NAME: str = "logtap"

# OS-specific config directory (holds logtap.json)
# - macOS: ~/Library/Application Support/logtap/
# - Linux: ~/.config/logtap/
# - Windows: %APPDATA%\logtap\
APP_CONFIG_DIR: str = user_config_dir(APP_NAME)

# ============================================================================
# Relay Endpoint
# ============================================================================

# Path segment viewers connect to. Also stamped into every outbound log event.
RELAY_PATH: str = "/logtap/logs"

DEFAULT_RELAY_HOST: str = "127.0.0.1"

# First candidate port; random fallbacks follow it
DEFAULT_RELAY_PORT: int = 54953

# Range for random fallback ports (unprivileged ports only)
MIN_PORT: int = 1024
MAX_PORT: int = 65535

# Number of random fallback ports tried after the default port
DEFAULT_RANDOM_PORT_RETRIES: int = 10

# Pending connection backlog for the relay socket
RELAY_LISTEN_BACKLOG: int = 100

# Seconds to wait for uvicorn to finish before cancelling the serve task
RELAY_SHUTDOWN_TIMEOUT_SECONDS: float = 5.0

# ============================================================================
# Wire Format
# ============================================================================

# Thread identifiers are not tracked; viewers expect the field anyway
THREAD_PLACEHOLDER: str = "not-supported"

# Only directives addressed to this logger name have an effect
ROOT_LOGGER: str = "root"

WELCOME_MESSAGE: str = "Welcome to the logtap log relay"

# ============================================================================
# Environment Variables
# ============================================================================

ENV_CONFIG_PATH: str = "LOGTAP_CONFIG"
ENV_DISABLED: str = "LOGTAP_DISABLED"
ENV_HOST: str = "LOGTAP_HOST"
ENV_PORT: str = "LOGTAP_PORT"
