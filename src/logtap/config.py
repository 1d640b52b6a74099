"""Relay configuration for logtap.

Config is an optional JSON file; every field has a default, so a process
can start the relay without any file present.

Example usage:
    # Load from $LOGTAP_CONFIG or the app dir (defaults if missing)
    config = load_relay_config()

    # Ports to try, in order
    ports = candidate_ports(config)
"""

from __future__ import annotations

__all__ = [
    "RelayConfig",
    "candidate_ports",
    "get_config_path",
    "load_relay_config",
    "load_relay_config_strict",
]

import json
import logging
import os
import random
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from logtap.constants import (
    APP_CONFIG_DIR,
    APP_NAME,
    DEFAULT_RANDOM_PORT_RETRIES,
    DEFAULT_RELAY_HOST,
    DEFAULT_RELAY_PORT,
    ENV_CONFIG_PATH,
    ENV_DISABLED,
    ENV_HOST,
    ENV_PORT,
    MAX_PORT,
    MIN_PORT,
)
from logtap.exceptions import ConfigurationError

_logger = logging.getLogger(f"{APP_NAME}.config")

# Values of LOGTAP_DISABLED that turn the relay off
_TRUTHY = frozenset({"1", "true", "yes", "on"})


class RelayConfig(BaseModel):
    """Log relay configuration.

    Attributes:
        host: Interface the relay listens on (default: 127.0.0.1).
        port: First candidate port (default: 54953).
        random_port_retries: Random fallback ports tried after ``port``.
        root_level: Root override applied when the first viewer attaches.
        log_dir: Directory for the relay's own JSONL diagnostics, if any.
        enabled: Set false to skip starting the relay entirely.
    """

    host: str = Field(
        default=DEFAULT_RELAY_HOST,
        min_length=1,
        description="Interface the relay listens on",
    )
    port: int = Field(
        default=DEFAULT_RELAY_PORT,
        ge=MIN_PORT,
        le=MAX_PORT,
        description="First candidate port",
    )
    random_port_retries: int = Field(
        default=DEFAULT_RANDOM_PORT_RETRIES,
        ge=0,
        le=100,
        description="Random fallback ports tried after the first candidate",
    )
    root_level: str = Field(
        default="INFO",
        description="Initial root log level while viewers are attached",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for relay diagnostics (relay.jsonl)",
    )
    enabled: bool = Field(default=True, description="Start the relay at all")

    model_config = {"extra": "ignore"}  # Ignore unknown fields for forward compat


def get_config_path() -> Path:
    """Get the config file path.

    Returns:
        $LOGTAP_CONFIG if set, else logtap.json in the app config dir.
    """
    override = os.environ.get(ENV_CONFIG_PATH)
    if override:
        return Path(override).expanduser()
    return Path(APP_CONFIG_DIR) / "logtap.json"


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    merged = dict(data)
    if os.environ.get(ENV_HOST):
        merged["host"] = os.environ[ENV_HOST]
    if os.environ.get(ENV_PORT):
        merged["port"] = os.environ[ENV_PORT]
    if os.environ.get(ENV_DISABLED, "").strip().lower() in _TRUTHY:
        merged["enabled"] = False
    return merged


def load_relay_config(path: Path | None = None) -> RelayConfig:
    """Load relay configuration from file and environment.

    A missing file gives the defaults. Invalid JSON or values fall back to
    defaults with a warning; environment overrides still apply where they
    validate.

    Args:
        path: Config file path (default: get_config_path()).

    Returns:
        RelayConfig: Loaded or default configuration.
    """
    config_path = path or get_config_path()
    data: dict[str, Any] = {}

    if config_path.exists():
        try:
            with config_path.open(encoding="utf-8") as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                data = loaded
            else:
                _logger.warning(
                    {
                        "event": "config_invalid_shape",
                        "message": "Relay config is not a JSON object, using defaults",
                        "details": {"config_path": str(config_path)},
                    }
                )
        except json.JSONDecodeError as e:
            _logger.warning(
                {
                    "event": "config_invalid_json",
                    "message": f"Invalid JSON in relay config, using defaults: {e}",
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "details": {"config_path": str(config_path)},
                }
            )
        except OSError as e:
            # Covers all file I/O errors including PermissionError (subclass of OSError)
            _logger.warning(
                {
                    "event": "config_read_failed",
                    "message": f"Failed to read relay config file, using defaults: {e}",
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "details": {"config_path": str(config_path)},
                }
            )

    try:
        return RelayConfig.model_validate(_apply_env_overrides(data))
    except ValidationError as e:
        _logger.warning(
            {
                "event": "config_validation_failed",
                "message": f"Invalid relay config values, using defaults: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
                "details": {"config_path": str(config_path)},
            }
        )
        return RelayConfig()


def load_relay_config_strict(path: Path) -> RelayConfig:
    """Load relay configuration, raising on any error.

    Unlike load_relay_config(), a missing file, invalid JSON or invalid
    values raise instead of falling back to defaults. Used when the
    operator names a config file explicitly.

    Args:
        path: Config file path.

    Returns:
        RelayConfig: Validated configuration.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid.
    """
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid config in {path}: expected a JSON object")

    try:
        return RelayConfig.model_validate(_apply_env_overrides(data))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config in {path}: {e}") from e


def candidate_ports(config: RelayConfig, rng: random.Random | None = None) -> list[int]:
    """Build the ordered list of ports the listener tries.

    Args:
        config: Relay configuration.
        rng: Random source for fallback ports (tests pass a seeded one).

    Returns:
        The configured port followed by ``random_port_retries`` random
        ports in [MIN_PORT, MAX_PORT].
    """
    source = rng or random.Random()
    return [config.port] + [source.randint(MIN_PORT, MAX_PORT) for _ in range(config.random_port_retries)]
