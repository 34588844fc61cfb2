"""
Messaging provider factory.
"""

from __future__ import annotations

from surveybot.messaging.config import MessagingConfig, ProviderType
from surveybot.messaging.interface import MessagingProvider
from surveybot.messaging.mock_adapter import MockMessagingAdapter
from surveybot.messaging.telegram_adapter import TelegramAdapter
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)


def _mask(s: str, keep: int = 6) -> str:
    if not s:
        return ""
    if len(s) <= keep:
        return "*" * len(s)
    return f"{s[:keep]}***"


def build_messaging_provider(bot_token: str, cfg: MessagingConfig) -> MessagingProvider:
    logger.info(
        "Messaging config resolved",
        extra={
            "provider_type": cfg.provider_type.value,
            "bot_token": _mask(bot_token),
            "api_base_url": cfg.api_base_url,
        },
    )

    if cfg.provider_type == ProviderType.TELEGRAM:
        return TelegramAdapter(bot_token, cfg)

    if cfg.provider_type == ProviderType.MOCK:
        return MockMessagingAdapter()

    raise ValueError(f"Unsupported messaging provider_type: {cfg.provider_type}")
