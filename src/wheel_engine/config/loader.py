"""
Configuration loader with environment variable override support.

Values come from an optional YAML file and are then overridden by
environment variables of the form ``WHEEL_ENGINE_<SECTION>__<PARAM>``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from ..utils import get_logger
from .schema import EngineConfig

logger = get_logger(__name__)

ENV_PREFIX = "WHEEL_ENGINE_"
CONFIG_PATH_ENV = "WHEEL_ENGINE_CONFIG"


def _convert_env_value(value: str) -> Any:
    """Convert environment variable string to appropriate type."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    if value.lower() == "none":
        return None

    try:
        if "." not in value:
            return int(value)
        return float(value)
    except ValueError:
        pass

    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration root must be a mapping in {path}")
    return data


def apply_env_overrides(
    config: dict[str, Any], environ: Optional[dict[str, str]] = None
) -> dict[str, Any]:
    """
    Apply environment variable overrides in place.

    Examples:
        WHEEL_ENGINE_GREEKS__MAX_REQUESTS=10
        WHEEL_ENGINE_STORAGE__BACKEND=duckdb
        WHEEL_ENGINE_LOGGING__LEVEL=DEBUG
    """
    environ = dict(os.environ) if environ is None else environ

    for env_key, env_value in sorted(environ.items()):
        if not env_key.startswith(ENV_PREFIX) or env_key == CONFIG_PATH_ENV:
            continue

        key_parts = env_key[len(ENV_PREFIX) :].lower().split("__")
        if len(key_parts) < 2:
            continue

        current = config
        for part in key_parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[key_parts[-1]] = _convert_env_value(env_value)
        logger.debug(
            "Configuration override from environment",
            extra={"env_var": env_key, "path": ".".join(key_parts)},
        )

    return config


def load_config(
    path: Optional[Union[str, Path]] = None, environ: Optional[dict[str, str]] = None
) -> EngineConfig:
    """
    Build an ``EngineConfig``.

    ``path`` wins over the ``WHEEL_ENGINE_CONFIG`` variable. An explicit path
    must exist; without one, defaults are used.

    Raises
    ------
    ConfigurationError
        If the file cannot be read or the merged values fail validation
    """
    environ = dict(os.environ) if environ is None else environ
    raw: dict[str, Any] = {}

    config_path = path if path is not None else environ.get(CONFIG_PATH_ENV)
    if config_path:
        config_path = Path(config_path).expanduser()
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        raw = _load_yaml(config_path)

    raw = apply_env_overrides(raw, environ)

    try:
        config = EngineConfig(**raw)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e

    logger.info(
        "Configuration loaded",
        extra={
            "path": str(config_path) if config_path else None,
            "max_requests": config.greeks.max_requests,
            "window_seconds": config.greeks.window_seconds,
            "storage_backend": config.storage.backend,
        },
    )
    return config
