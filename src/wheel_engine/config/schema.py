"""Configuration schema and validation using Pydantic."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator


class GreeksConfig(BaseModel):
    """Market data provider budget and cache policy."""

    max_requests: int = Field(5, ge=1, le=10_000, description="Requests allowed per window (R)")
    window_seconds: float = Field(60.0, gt=0.0, le=86_400.0, description="Rolling window (W)")
    request_timeout_seconds: float = Field(
        10.0, gt=0.0, le=300.0, description="Timeout for a single provider request"
    )
    stale_after_minutes: float = Field(
        30.0, gt=0.0, description="Age after which a cached quote is marked stale"
    )
    ttl_minutes: float = Field(60.0, gt=0.0, description="Age after which a cached quote is a miss")
    retry_attempts: int = Field(2, ge=1, le=10, description="Attempts per quote for transient errors")
    retry_backoff_seconds: float = Field(
        1.0, ge=0.0, le=60.0, description="Base of the exponential retry backoff"
    )
    refresh_stale: bool = Field(
        False, description="Refetch stale quotes instead of serving them marked stale"
    )
    history_size: int = Field(
        256, ge=1, le=100_000, description="Recent fetch requests kept for inspection"
    )
    base_url: str = Field("https://api.polygon.io", description="Provider base URL")
    api_key: Optional[SecretStr] = Field(None, description="Provider API key")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_cache_thresholds(self) -> "GreeksConfig":
        if self.stale_after_minutes >= self.ttl_minutes:
            raise ValueError("stale_after_minutes must be less than ttl_minutes")
        return self

    @property
    def min_spacing_seconds(self) -> float:
        return self.window_seconds / self.max_requests


class StorageConfig(BaseModel):
    """Where the Greeks cache is persisted."""

    backend: Literal["memory", "json", "duckdb"] = Field(
        "memory", description="Store implementation"
    )
    path: Optional[Path] = Field(None, description="File path for json/duckdb backends")

    @model_validator(mode="after")
    def validate_path(self) -> "StorageConfig":
        if self.backend != "memory" and self.path is None:
            raise ValueError(f"storage.path is required for the {self.backend} backend")
        return self


class AnalysisConfig(BaseModel):
    """Position analysis options."""

    premium_basis: Literal["per_share", "total"] = Field(
        "per_share", description="Whether raw premiums are per share or leg totals"
    )
    moneyness_scale: float = Field(
        0.05, gt=0.0, le=1.0, description="Moneyness mapped to one standard deviation"
    )


class LoggingConfig(BaseModel):
    """Structured logging setup."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Root log level"
    )
    file: Optional[Path] = Field(None, description="Optional JSON log file")
    format: Literal["json", "text"] = Field("json", description="Console log format")

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


class EngineConfig(BaseModel):
    """Root configuration."""

    greeks: GreeksConfig = Field(default_factory=GreeksConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
