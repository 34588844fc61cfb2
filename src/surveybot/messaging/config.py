"""
Messaging provider configuration.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported messaging provider types."""

    TELEGRAM = "telegram"
    MOCK = "mock"


class MessagingConfig(BaseSettings):
    """Messaging provider configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="MESSAGING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider_type: ProviderType = Field(default=ProviderType.TELEGRAM)
    api_base_url: str = Field(default="https://api.telegram.org")
    request_timeout_seconds: float = Field(default=15.0, gt=0, le=120)

    def method_url(self, bot_token: str, method: str) -> str:
        return f"{self.api_base_url.rstrip('/')}/bot{bot_token}/{method}"


def get_messaging_config() -> MessagingConfig:
    return MessagingConfig()
