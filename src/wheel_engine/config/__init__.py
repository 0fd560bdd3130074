"""Engine configuration."""

from .loader import CONFIG_PATH_ENV, ENV_PREFIX, apply_env_overrides, load_config
from .schema import AnalysisConfig, EngineConfig, GreeksConfig, LoggingConfig, StorageConfig

__all__ = [
    "AnalysisConfig",
    "CONFIG_PATH_ENV",
    "ENV_PREFIX",
    "EngineConfig",
    "GreeksConfig",
    "LoggingConfig",
    "StorageConfig",
    "apply_env_overrides",
    "load_config",
]
