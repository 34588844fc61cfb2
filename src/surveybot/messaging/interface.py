"""
Messaging provider interface definition.

The provider turns platform webhook payloads into ``InboundUpdate`` objects
and performs the outbound chat operations the dialogue engine asks for.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from surveybot.dialogue.models import Button


class UpdateKind(str, Enum):
    """Inbound update types."""

    MESSAGE = "message"
    CALLBACK_QUERY = "callback_query"
    OTHER = "other"


@dataclass(frozen=True)
class InboundUpdate:
    """Normalized inbound update.

    ``source_text``/``source_message_id`` describe the message a tapped button
    was attached to; they are what the engine uses to recover lost state.
    """

    kind: UpdateKind
    update_id: int | None = None
    user_id: int | None = None
    chat_id: int | None = None
    username: str | None = None
    text: str | None = None
    callback_query_id: str | None = None
    callback_data: str | None = None
    source_message_id: int | None = None
    source_text: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    @property
    def command(self) -> str | None:
        """Bot command without arguments or @botname suffix, e.g. ``/start``."""
        if not self.text or not self.text.startswith("/"):
            return None
        head = self.text.split(maxsplit=1)[0]
        return head.split("@", 1)[0].lower()


class MessagingProviderError(Exception):
    """Base exception for messaging provider errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.provider_response = provider_response or {}


class UpdateParseError(MessagingProviderError):
    """Error parsing a webhook update."""


class MessageDeliveryError(MessagingProviderError):
    """The platform rejected or did not answer an outbound call."""


def inline_keyboard(buttons: Sequence[Button]) -> dict[str, Any]:
    """One button per row."""
    return {"inline_keyboard": [[{"text": b.text, "callback_data": b.payload}] for b in buttons]}


class MessagingProvider(ABC):
    """Abstract interface for chat messaging providers."""

    @abstractmethod
    def parse_update(self, payload: dict[str, Any]) -> InboundUpdate:
        """Parse a webhook payload from the platform."""
        ...

    @abstractmethod
    async def send_message(
        self,
        chat_id: int,
        text: str,
        buttons: Sequence[Button] = (),
    ) -> dict[str, Any]:
        """Send a new message, optionally with inline buttons."""
        ...

    @abstractmethod
    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        buttons: Sequence[Button] = (),
    ) -> dict[str, Any]:
        """Replace the text and buttons of an existing message."""
        ...

    @abstractmethod
    async def edit_reply_markup(
        self,
        chat_id: int,
        message_id: int,
        buttons: Sequence[Button] = (),
    ) -> dict[str, Any]:
        """Replace only the buttons of an existing message."""
        ...

    @abstractmethod
    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        """Delete a message."""
        ...

    @abstractmethod
    async def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> bool:
        """Acknowledge a button tap, optionally with a short toast."""
        ...

    async def close(self) -> None:
        return None

    @property
    def ready(self) -> bool:
        return True
