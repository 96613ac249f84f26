"""Application settings loaded from the environment."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_env_path = Path(__file__).resolve().parents[1] / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=_env_path, extra="ignore")

    project_name: str = "ether-activity"
    database_url: str = "sqlite+aiosqlite:///./activity.db"
    log_level: str = "INFO"

    activity_api_base_url: str = "http://127.0.0.1:8001"
    # None keeps the transport's default timeout.
    activity_api_timeout_seconds: float | None = None
    activity_poll_interval_seconds: float = 30.0
    activity_toast_ttl_seconds: float = 6.0
    activity_thread_fetch_concurrency: int = 8

    @field_validator("activity_api_base_url", mode="after")
    @classmethod
    def strip_base_url(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator(
        "activity_poll_interval_seconds",
        "activity_toast_ttl_seconds",
        mode="after",
    )
    @classmethod
    def require_positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("activity_thread_fetch_concurrency", mode="after")
    @classmethod
    def require_positive_concurrency(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value


settings = Settings()
