"""Application configuration via pydantic-settings.

All config is sourced from environment variables. Never use os.getenv() directly.
"""

import json

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    """Remote pipeline service: compiler, job launcher, job executor."""

    model_config = SettingsConfigDict(env_prefix="")

    api_base_url: str = "http://localhost:8000/api"
    api_timeout: float = 10.0  # per request, streaming reads excluded
    api_token: str = ""


class RedisSettings(BaseSettings):
    """Redis configuration: draft persistence."""

    model_config = SettingsConfigDict(env_prefix="")

    redis_url: str = "redis://redis:6379/0"
    draft_key_prefix: str = "jobforge:draft:"


class PreviewSettings(BaseSettings):
    """Preview job polling and stop confirmation."""

    model_config = SettingsConfigDict(env_prefix="")

    preview_job_name: str = "preview"

    # Status polling while waiting for the preview job to run (seconds)
    preview_poll_interval: float = 1.0
    preview_max_backoff: float = 8.0
    preview_max_wait: float = 300.0

    # Status polling after an immediate stop (seconds)
    stop_poll_interval: float = 0.25
    stop_max_wait: float = 60.0

    @model_validator(mode="after")
    def _validate_waits(self) -> "PreviewSettings":
        if self.preview_max_wait < self.preview_poll_interval:
            raise ValueError("PREVIEW_MAX_WAIT must not be shorter than PREVIEW_POLL_INTERVAL")
        if self.stop_max_wait < self.stop_poll_interval:
            raise ValueError("STOP_MAX_WAIT must not be shorter than STOP_POLL_INTERVAL")
        return self


class LauncherSettings(BaseSettings):
    """Defaults for durable pipeline launches."""

    model_config = SettingsConfigDict(env_prefix="")

    default_parallelism: int = 4
    default_checkpoint_interval_ms: int = 5000


class Settings(BaseSettings):
    """jobforge application settings.

    Environment variables are the single source of truth.
    Defaults are development-safe values only.
    """

    model_config = SettingsConfigDict(env_file=".env")

    app_env: str = "development"

    # Nested settings groups
    api: ApiSettings = ApiSettings()
    redis: RedisSettings = RedisSettings()
    preview: PreviewSettings = PreviewSettings()
    launcher: LauncherSettings = LauncherSettings()

    # CORS
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    metrics_enabled: bool = True

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Refuse to start without an API token outside development."""
        if self.app_env != "development" and not self.api.api_token:
            raise ValueError(
                f"API_TOKEN must be set when APP_ENV={self.app_env!r}. "
                "Unauthenticated API access is only allowed in development."
            )
        return self

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return json.loads(v)
        return v


settings = Settings()
