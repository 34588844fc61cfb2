"""
Email provider interfaces and data types.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(frozen=True)
class EmailAttachment:
    """File attached to an email."""
    filename: str
    content: bytes
    content_type: str = XLSX_CONTENT_TYPE


@dataclass(frozen=True)
class EmailMessage:
    """Email message to be sent."""
    to_email: str
    subject: str
    body_html: str
    body_text: Optional[str] = None
    from_email: Optional[str] = None
    attachments: tuple[EmailAttachment, ...] = ()
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class EmailResult:
    """Result of email send operation."""
    success: bool
    provider_message_id: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 1
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EmailProvider(ABC):
    """
    Abstract interface for email providers.
    """

    @abstractmethod
    async def send(self, message: EmailMessage) -> EmailResult:
        """
        Send an email message.

        Args:
            message: The email message to send.

        Returns:
            EmailResult with success status and provider details.
        """
        pass
