"""
Application configuration with environment-driven settings.

Mail and bot credentials are mandatory; scheduling and queue settings are
optional and switch the corresponding delivery strategy on when present.
"""

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


REQUIRED_VARIABLES: tuple[str, ...] = (
    "bot_token",
    "recipient_email",
    "smtp_user",
    "smtp_pass",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "surveybot"
    debug: bool = False
    log_level: str = "INFO"

    # Bot
    bot_token: str = Field(default="", description="Telegram bot credential")
    max_update_bytes: int = Field(
        default=1_000_000,
        ge=1024,
        description="Largest accepted webhook body; bigger payloads are rejected with 500",
    )

    # Dialogue
    dialogue_path: str = Field(
        default="",
        description="Optional JSON file overriding the bundled dialogue content",
    )
    embed_branch_key: bool = Field(
        default=False,
        description="Render answer buttons as answer_<key>_<q>_<o> instead of answer_<q>_<o>",
    )
    state_redis_url: str = Field(
        default="",
        description="Redis URL for conversation state; empty keeps state in process memory",
    )
    state_ttl_seconds: int = Field(default=7 * 24 * 3600, ge=0)

    # Mail
    recipient_email: str = Field(default="", description="Mailbox receiving exported results")
    smtp_host: str = Field(default="smtp.yandex.ru")
    smtp_port: int = Field(default=465)
    smtp_user: str = Field(default="")
    smtp_pass: str = Field(default="")
    smtp_fallback_port: int = Field(
        default=587,
        description="STARTTLS port used for the single retry after a failed primary send",
    )
    smtp_timeout_seconds: float = Field(default=30.0, gt=0)

    # Follow-up
    followup_enabled: bool = Field(
        default=False,
        description="Schedule the branch's delayed prompt after the diagnosis is shown",
    )
    followup_delay_seconds: int = Field(default=2 * 60 * 60, ge=0)

    # Push scheduling service
    qstash_token: str = Field(default="", description="Bearer token for the push-schedule service")
    qstash_url: str = Field(default="https://qstash.upstash.io")
    public_base_url: str = Field(
        default="",
        description="Public base URL of this service; target of /dispatch-delayed",
    )

    # Fallback queue
    queue_redis_url: str = Field(default="", description="Redis URL holding the delayed-jobs sorted set")
    queue_redis_token: str = Field(default="", description="Password for the queue Redis, if not in the URL")
    queue_key: str = Field(default="delayed-jobs")
    queue_batch_size: int = Field(default=50, ge=1, le=1000)
    queue_poller_enabled: bool = Field(
        default=False,
        description="Drain the delayed-jobs queue from a background task inside the app",
    )
    queue_poll_interval_seconds: int = Field(default=60, ge=5, le=3600)

    @field_validator(
        "bot_token",
        "recipient_email",
        "smtp_host",
        "smtp_user",
        "smtp_pass",
        "qstash_token",
        "public_base_url",
        "queue_redis_url",
        "queue_redis_token",
        mode="before",
    )
    @classmethod
    def strip_whitespace(cls, v: object) -> object:
        """Hosting dashboards tend to leave trailing newlines in secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    def missing_required(self) -> list[str]:
        """Names of required environment variables that are unset."""
        return [name.upper() for name in REQUIRED_VARIABLES if not getattr(self, name)]

    @property
    def push_scheduling_configured(self) -> bool:
        return bool(self.qstash_token and self.public_base_url)

    @property
    def queue_configured(self) -> bool:
        return bool(self.queue_redis_url)

    @property
    def dispatch_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/dispatch-delayed"


def _get_settings_cached() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


_settings: Settings | None = None


def get_settings() -> Settings:
    # Tests monkeypatch the environment between cases; never serve a stale copy there.
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return Settings()
    return _get_settings_cached()
