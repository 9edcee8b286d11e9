"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_bot_token: str
    supabase_url: str
    supabase_service_key: str
    supabase_bucket: str = "avatar-studio"
    admin_token: str
    replicate_api_token: str
    replicate_training_version: str
    replicate_model_owner: str
    replicate_destination_model_slug: str
    replicate_default_model_version: str | None = None
    openai_api_key: str
    openai_moderation_model: str = "omni-moderation-latest"
    yandex_translate_api_key: str | None = None
    yandex_cloud_folder_id: str | None = None
    required_channels: str | None = None
    environment: str = _ENVIRONMENT

    min_photos: int = 5
    max_photos: int = 10
    training_rate_limit: int = 1
    training_rate_window_seconds: float = 3600
    generation_rate_limit: int = 2
    generation_rate_window_seconds: float = 60
    generation_daily_limit: int = 50

    training_poll_interval_seconds: float = 10
    training_error_backoff_seconds: float = 5
    training_timeout_seconds: float = 600
    generation_poll_interval_seconds: float = 5
    generation_error_backoff_seconds: float = 3
    generation_timeout_seconds: float | None = None
    max_consecutive_poll_errors: int = 3
    remote_retry_delay_seconds: float = 2
    max_generation_outputs: int = 4

    preserve_failed_artifacts: bool = False
    idle_cleanup_interval_hours: float = 6
    idle_expiration_hours: float = 24

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_channel_list(raw: str | None) -> list[str]:
    """Parse comma-separated sponsor channel usernames from env."""
    if raw is None:
        return []
    channels: list[str] = []
    for chunk in raw.split(","):
        value = chunk.strip()
        if not value:
            continue
        channels.append(value if value.startswith("@") else f"@{value}")
    return channels
