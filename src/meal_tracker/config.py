"""Application configuration."""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    storage_bucket: str = "meal-images"
    webhook_secret: str
    analysis_engine: str = "stub"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    openai_reasoning_effort: str | None = None
    openai_store: bool = False
    stub_analysis_latency_seconds: float = 1.5
    default_auto_promote_delay_minutes: int = Field(default=5, gt=0)
    auto_promote_sweep_interval_seconds: float = Field(default=30.0, gt=0)
    auto_promote_sweep_batch_size: int = Field(default=100, gt=0)
    stale_analysis_timeout_minutes: int = Field(default=10, gt=0)
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
