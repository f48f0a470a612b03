"""
Quotex Signals — Configuration Management

Pydantic Settings: loads from .env, validates all configuration at startup.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── External Predictor ──
    predictor_timeout_seconds: float = Field(default=3.0, gt=0)
    predictor_max_workers: int = Field(default=4, ge=1)
    prediction_window: int = Field(default=20, ge=10, le=20)  # candles sent as context
    predictor_failure_threshold: int = Field(default=3, ge=1)
    predictor_recovery_timeout: float = Field(default=60.0, ge=0)

    # ── Accuracy Tracking ──
    accuracy_backend: Literal["memory", "file", "redis"] = "memory"
    accuracy_file_path: str = "accuracy_stats.json"

    # ── Redis ──
    redis_url: str = "redis://localhost:6379/0"
    accuracy_redis_key: str = "quotex_signals:accuracy"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance — created once, reused everywhere."""
    return Settings()
