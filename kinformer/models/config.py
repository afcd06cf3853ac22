"""
Configuration models for kinformer.

Handles retry policy, rate limiter shape and process-level settings.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RateLimiterConfig(BaseModel):
    """Backoff policy used when a failed event is re-queued"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    kind: str = "default"

    # Per-item exponential backoff
    base_delay: float = Field(default=0.005, gt=0.0)
    max_delay: float = Field(default=1000.0, gt=0.0)

    # Overall token bucket
    qps: float = Field(default=10.0, gt=0.0)
    burst: int = Field(default=100, ge=1)

    # Fast/slow backoff
    fast_delay: float = Field(default=0.005, ge=0.0)
    slow_delay: float = Field(default=10.0, ge=0.0)
    max_fast_attempts: int = Field(default=5, ge=0)

    @field_validator('kind')
    @classmethod
    def validate_kind(cls, v: str) -> str:
        """Validate rate limiter kind"""
        valid_kinds = {'default', 'exponential', 'bucket', 'fast-slow'}
        if v.lower() not in valid_kinds:
            raise ValueError(f'Rate limiter kind must be one of: {sorted(valid_kinds)}')
        return v.lower()

    @model_validator(mode='after')
    def validate_delays(self) -> 'RateLimiterConfig':
        """Ensure the backoff ceiling is not below its base"""
        if self.max_delay < self.base_delay:
            raise ValueError('max_delay must be >= base_delay')
        return self


class InformerConfig(BaseModel):
    """Dispatch, retry and startup settings for one informer"""
    model_config = ConfigDict(
        validate_assignment=True
    )

    # Retry policy (negative = retry forever)
    max_retries: int = 5

    # Consumers
    workers: int = Field(default=1, ge=1, le=64)
    poll_interval: float = Field(default=1.0, gt=0.0)
    handler_timeout: Optional[float] = Field(default=None, gt=0.0)
    shutdown_timeout: float = Field(default=5.0, gt=0.0)

    # Startup barrier
    sync_timeout: Optional[float] = Field(default=None, gt=0.0)
    sync_poll_interval: float = Field(default=0.1, gt=0.0)

    # Resync applied to watches registered without an explicit interval
    default_resync: float = Field(default=0.0, ge=0.0)

    rate_limiter: RateLimiterConfig = Field(default_factory=RateLimiterConfig)

    @property
    def unlimited_retries(self) -> bool:
        return self.max_retries < 0


class InformerSettings(BaseSettings):
    """Process-level settings with environment variable support"""
    model_config = SettingsConfigDict(
        env_prefix="KINFORMER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    config_file: Optional[Path] = None

    @field_validator('log_level', mode='before')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v
