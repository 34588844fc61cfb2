"""
Mock messaging provider for tests and local runs.
"""

from typing import Any, Sequence

from surveybot.dialogue.models import Button
from surveybot.messaging.interface import (
    InboundUpdate,
    MessageDeliveryError,
    MessagingProvider,
)
from surveybot.messaging.telegram_adapter import parse_telegram_update
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)


class MockMessagingAdapter(MessagingProvider):
    """Records every outbound call instead of talking to a platform."""

    def __init__(self) -> None:
        self._calls: list[dict[str, Any]] = []
        self._next_message_id: int = 1000
        self._failing_methods: set[str] = set()
        self._fail_error: str = "Mock failure"

    def reset(self) -> None:
        self._calls.clear()
        self._next_message_id = 1000
        self._failing_methods.clear()

    def configure_failure(self, *methods: str, error_message: str = "Mock failure") -> None:
        """Make the named methods raise MessageDeliveryError (all methods when none given)."""
        self._failing_methods = set(methods) or {
            "send_message",
            "edit_message_text",
            "edit_reply_markup",
            "delete_message",
            "answer_callback_query",
        }
        self._fail_error = error_message

    @property
    def calls(self) -> list[dict[str, Any]]:
        return self._calls.copy()

    def calls_of(self, method: str) -> list[dict[str, Any]]:
        return [c for c in self._calls if c["method"] == method]

    @property
    def sent_texts(self) -> list[str]:
        return [c["text"] for c in self._calls if c["method"] in ("send_message", "edit_message_text")]

    def _record(self, method: str, **params: Any) -> None:
        if method in self._failing_methods:
            raise MessageDeliveryError(message=self._fail_error, error_code="MOCK_ERROR")
        logger.info("Mock: %s", method, extra={"params": params})
        self._calls.append({"method": method, **params})

    def parse_update(self, payload: dict[str, Any]) -> InboundUpdate:
        return parse_telegram_update(payload)

    async def send_message(
        self,
        chat_id: int,
        text: str,
        buttons: Sequence[Button] = (),
    ) -> dict[str, Any]:
        self._record("send_message", chat_id=chat_id, text=text, buttons=list(buttons))
        self._next_message_id += 1
        return {"message_id": self._next_message_id, "chat": {"id": chat_id}, "text": text}

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        buttons: Sequence[Button] = (),
    ) -> dict[str, Any]:
        self._record("edit_message_text", chat_id=chat_id, message_id=message_id, text=text, buttons=list(buttons))
        return {"message_id": message_id, "chat": {"id": chat_id}, "text": text}

    async def edit_reply_markup(
        self,
        chat_id: int,
        message_id: int,
        buttons: Sequence[Button] = (),
    ) -> dict[str, Any]:
        self._record("edit_reply_markup", chat_id=chat_id, message_id=message_id, buttons=list(buttons))
        return {"message_id": message_id, "chat": {"id": chat_id}}

    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        self._record("delete_message", chat_id=chat_id, message_id=message_id)
        return True

    async def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> bool:
        self._record("answer_callback_query", callback_query_id=callback_query_id, text=text)
        return True
