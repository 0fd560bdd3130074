"""Tests for the configuration schema and loader."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from wheel_engine.config import (
    EngineConfig,
    GreeksConfig,
    StorageConfig,
    apply_env_overrides,
    load_config,
)
from wheel_engine.exceptions import ConfigurationError

REPO_CONFIG = Path(__file__).resolve().parent.parent / "config" / "engine.yaml"


class TestSchema:
    def test_defaults(self) -> None:
        config = EngineConfig()
        assert config.greeks.max_requests == 5
        assert config.greeks.window_seconds == 60.0
        assert config.greeks.min_spacing_seconds == 12.0
        assert config.greeks.stale_after_minutes == 30.0
        assert config.greeks.ttl_minutes == 60.0
        assert config.storage.backend == "memory"
        assert config.analysis.premium_basis == "per_share"
        assert config.logging.level == "INFO"

    def test_stale_must_precede_ttl(self) -> None:
        with pytest.raises(ValidationError, match="stale_after_minutes"):
            GreeksConfig(stale_after_minutes=60, ttl_minutes=60)

    def test_base_url_is_normalized(self) -> None:
        assert GreeksConfig(base_url="https://example.com/").base_url == "https://example.com"
        with pytest.raises(ValidationError):
            GreeksConfig(base_url="ftp://example.com")

    def test_budget_bounds(self) -> None:
        with pytest.raises(ValidationError):
            GreeksConfig(max_requests=0)
        with pytest.raises(ValidationError):
            GreeksConfig(window_seconds=0)

    def test_file_backend_needs_path(self) -> None:
        with pytest.raises(ValidationError, match="storage.path"):
            StorageConfig(backend="json")

    def test_api_key_is_secret(self) -> None:
        config = GreeksConfig(api_key="abc123")
        assert "abc123" not in repr(config)
        assert config.api_key.get_secret_value() == "abc123"

    def test_log_level_case(self) -> None:
        assert EngineConfig(logging={"level": "debug"}).logging.level == "DEBUG"


class TestEnvOverrides:
    def test_nested_override(self) -> None:
        config = apply_env_overrides(
            {"greeks": {"max_requests": 5}},
            {
                "WHEEL_ENGINE_GREEKS__MAX_REQUESTS": "10",
                "WHEEL_ENGINE_GREEKS__REFRESH_STALE": "true",
                "WHEEL_ENGINE_ANALYSIS__MONEYNESS_SCALE": "0.1",
                "WHEEL_ENGINE_LOGGING__LEVEL": "DEBUG",
            },
        )
        assert config["greeks"] == {"max_requests": 10, "refresh_stale": True}
        assert config["analysis"] == {"moneyness_scale": 0.1}
        assert config["logging"] == {"level": "DEBUG"}

    def test_unrelated_and_flat_variables_are_ignored(self) -> None:
        config = apply_env_overrides(
            {}, {"HOME": "/root", "WHEEL_ENGINE_DEBUG": "1", "WHEEL_ENGINE_CONFIG": "x.yaml"}
        )
        assert config == {}


class TestLoadConfig:
    def test_defaults_without_file(self) -> None:
        config = load_config(environ={})
        assert config == EngineConfig()

    def test_yaml_then_env(self, tmp_path: Path) -> None:
        path = tmp_path / "engine.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "greeks": {"max_requests": 3, "window_seconds": 30},
                    "storage": {"backend": "json", "path": str(tmp_path / "cache.json")},
                }
            )
        )
        config = load_config(path, environ={"WHEEL_ENGINE_GREEKS__MAX_REQUESTS": "4"})

        assert config.greeks.max_requests == 4
        assert config.greeks.window_seconds == 30.0
        assert config.storage.backend == "json"
        assert config.storage.path == tmp_path / "cache.json"

    def test_path_from_environment(self, tmp_path: Path) -> None:
        path = tmp_path / "engine.yaml"
        path.write_text("analysis:\n  premium_basis: total\n")
        config = load_config(environ={"WHEEL_ENGINE_CONFIG": str(path)})
        assert config.analysis.premium_basis == "total"

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "engine.yaml"
        path.write_text("")
        assert load_config(path, environ={}) == EngineConfig()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "nope.yaml", environ={})

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "engine.yaml"
        path.write_text("greeks: [unclosed")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path, environ={})

    def test_non_mapping_root(self, tmp_path: Path) -> None:
        path = tmp_path / "engine.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path, environ={})

    def test_validation_error_is_wrapped(self) -> None:
        with pytest.raises(ConfigurationError, match="validation failed"):
            load_config(environ={"WHEEL_ENGINE_GREEKS__MAX_REQUESTS": "0"})

    def test_shipped_config_is_valid(self) -> None:
        config = load_config(REPO_CONFIG, environ={})
        assert config.greeks.max_requests == 5
        assert config.storage.backend == "duckdb"
