"""Environment-driven settings for the relay."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewaySettings(BaseSettings):
    """Connection defaults read from ``CHAT_RELAY_*`` variables or a ``.env`` file."""

    model_config = SettingsConfigDict(
        env_prefix="CHAT_RELAY_",
        env_file=".env",
        extra="ignore",
    )

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = ""
    reasoning_enabled: bool = False
    # seconds; None leaves requests without a time limit
    timeout_s: float | None = None
