"""
Telegram Bot API adapter.

Talks to the Bot API over httpx; no SDK. Webhook parsing is shared with the
mock adapter so both accept the same update payloads.
"""
from __future__ import annotations

from typing import Any, Sequence

import httpx

from surveybot.dialogue.models import Button
from surveybot.messaging.config import MessagingConfig, get_messaging_config
from surveybot.messaging.interface import (
    InboundUpdate,
    MessageDeliveryError,
    MessagingProvider,
    UpdateKind,
    UpdateParseError,
    inline_keyboard,
)
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_telegram_update(payload: dict[str, Any]) -> InboundUpdate:
    """Normalize a Telegram ``Update`` object.

    Raises:
        UpdateParseError: when the payload is not an update object.
    """
    if not isinstance(payload, dict):
        raise UpdateParseError(
            message="Update payload must be a JSON object",
            error_code="INVALID_UPDATE",
        )

    update_id = _as_int(payload.get("update_id"))

    callback = payload.get("callback_query")
    if isinstance(callback, dict):
        sender = callback.get("from") or {}
        message = callback.get("message") or {}
        chat = message.get("chat") or {}
        user_id = _as_int(sender.get("id"))
        if user_id is None:
            raise UpdateParseError(
                message="callback_query without sender id",
                error_code="MISSING_SENDER",
                provider_response=payload,
            )
        return InboundUpdate(
            kind=UpdateKind.CALLBACK_QUERY,
            update_id=update_id,
            user_id=user_id,
            chat_id=_as_int(chat.get("id")) or user_id,
            username=sender.get("username"),
            callback_query_id=str(callback.get("id")) if callback.get("id") is not None else None,
            callback_data=callback.get("data"),
            source_message_id=_as_int(message.get("message_id")),
            source_text=message.get("text"),
            raw_payload=payload,
        )

    message = payload.get("message")
    if isinstance(message, dict):
        sender = message.get("from") or {}
        chat = message.get("chat") or {}
        user_id = _as_int(sender.get("id"))
        chat_id = _as_int(chat.get("id")) or user_id
        if chat_id is None:
            raise UpdateParseError(
                message="message without chat id",
                error_code="MISSING_CHAT",
                provider_response=payload,
            )
        return InboundUpdate(
            kind=UpdateKind.MESSAGE,
            update_id=update_id,
            user_id=user_id if user_id is not None else chat_id,
            chat_id=chat_id,
            username=sender.get("username"),
            text=message.get("text"),
            raw_payload=payload,
        )

    return InboundUpdate(kind=UpdateKind.OTHER, update_id=update_id, raw_payload=payload)


class TelegramAdapter(MessagingProvider):
    """Telegram Bot API provider using ``httpx.AsyncClient``."""

    def __init__(
        self,
        bot_token: str,
        config: MessagingConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._config = config or get_messaging_config()
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def ready(self) -> bool:
        return bool(self._bot_token)

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(self._config.request_timeout_seconds))
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _call(self, method: str, params: dict[str, Any]) -> Any:
        url = self._config.method_url(self._bot_token, method)
        try:
            response = await self._get_client().post(url, json=params)
        except httpx.HTTPError as exc:
            raise MessageDeliveryError(
                message=f"Telegram {method} request failed: {exc}",
                error_code="TRANSPORT_ERROR",
            ) from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code >= 400 or not body.get("ok", False):
            raise MessageDeliveryError(
                message=f"Telegram {method} rejected: {body.get('description') or response.status_code}",
                error_code=str(body.get("error_code") or response.status_code),
                provider_response=body,
            )
        return body.get("result")

    def parse_update(self, payload: dict[str, Any]) -> InboundUpdate:
        return parse_telegram_update(payload)

    async def send_message(
        self,
        chat_id: int,
        text: str,
        buttons: Sequence[Button] = (),
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if buttons:
            params["reply_markup"] = inline_keyboard(buttons)
        return await self._call("sendMessage", params)

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        buttons: Sequence[Button] = (),
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"chat_id": chat_id, "message_id": message_id, "text": text}
        if buttons:
            params["reply_markup"] = inline_keyboard(buttons)
        return await self._call("editMessageText", params)

    async def edit_reply_markup(
        self,
        chat_id: int,
        message_id: int,
        buttons: Sequence[Button] = (),
    ) -> dict[str, Any]:
        params = {"chat_id": chat_id, "message_id": message_id, "reply_markup": inline_keyboard(buttons)}
        return await self._call("editMessageReplyMarkup", params)

    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        return bool(await self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id}))

    async def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> bool:
        params: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            params["text"] = text
        return bool(await self._call("answerCallbackQuery", params))
