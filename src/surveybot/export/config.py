"""
Email delivery configuration.
"""

from dataclasses import dataclass

from surveybot.config import Settings


@dataclass(frozen=True)
class EmailConfig:
    """Configuration for the SMTP provider."""

    smtp_host: str = "smtp.yandex.ru"
    smtp_port: int = 465
    smtp_username: str = ""
    smtp_password: str = ""
    fallback_port: int = 587
    timeout_seconds: float = 30.0

    recipient_email: str = ""
    from_name: str = "Бот диагностики"

    @property
    def primary_uses_ssl(self) -> bool:
        # 465 is implicit TLS; anything else negotiates STARTTLS.
        return self.smtp_port == 465

    @property
    def default_from(self) -> str:
        return f'"{self.from_name}" <{self.smtp_username}>'

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailConfig":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_username=settings.smtp_user,
            smtp_password=settings.smtp_pass,
            fallback_port=settings.smtp_fallback_port,
            timeout_seconds=settings.smtp_timeout_seconds,
            recipient_email=settings.recipient_email,
        )
