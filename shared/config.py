"""
Shared configuration management for the AI quota gateway.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Counter store
    redis_url: Optional[str] = Field(default=None)
    counter_store_backend: str = Field(default="auto")  # auto | redis | memory | disabled
    counter_store_timeout: float = Field(default=2.0)

    # Chat tiers
    chat_global_daily_limit: int = Field(default=900)
    chat_global_daily_window: int = Field(default=24 * 3600)
    chat_global_rpm_limit: int = Field(default=12)
    chat_global_rpm_window: int = Field(default=60)
    chat_user_daily_limit: int = Field(default=50)
    chat_user_daily_window: int = Field(default=24 * 3600)

    # Speech tiers
    tts_global_rpm_limit: int = Field(default=10)
    tts_global_rpm_window: int = Field(default=60)
    tts_user_daily_limit: int = Field(default=500)
    tts_user_daily_window: int = Field(default=24 * 3600)

    # Upstream retries
    upstream_max_retries: int = Field(default=2)
    upstream_base_delay: float = Field(default=1.0)

    # Upstream (Gemini)
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GATEWAY_GEMINI_API_KEY", "GEMINI_API_KEY"),
    )
    gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    gemini_chat_model: str = Field(default="models/gemini-2.5-flash-lite")
    gemini_tts_model: str = Field(default="models/gemini-2.5-flash-preview-tts")
    gemini_tts_voice: str = Field(default="Kore")
    gemini_timeout: float = Field(default=60.0)
    system_prompt_file: Optional[str] = Field(default=None)

    # Boundary check
    app_secret: Optional[str] = Field(default=None)

    @property
    def is_production(self) -> bool:
        """Whether error details must be hidden from clients."""
        return self.env.lower() not in ("local", "development", "dev", "test")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
