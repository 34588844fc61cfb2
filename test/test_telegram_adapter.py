"""Tests for the Telegram Bot API adapter."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
import respx

from surveybot.dialogue.models import Button
from surveybot.messaging.config import MessagingConfig
from surveybot.messaging.interface import MessageDeliveryError, UpdateKind, UpdateParseError
from surveybot.messaging.telegram_adapter import TelegramAdapter, parse_telegram_update

API = "https://api.telegram.test"
TOKEN = "123:ABC"


def callback_update(data: str = "answer_0_1") -> dict[str, Any]:
    return {
        "update_id": 555,
        "callback_query": {
            "id": "cbq-1",
            "from": {"id": 42, "username": "tester"},
            "data": data,
            "message": {
                "message_id": 77,
                "chat": {"id": 4200},
                "text": "Как давно вас беспокоит ситуация, с которой вы хотите работать?",
            },
        },
    }


def message_update(text: str = "/start") -> dict[str, Any]:
    return {
        "update_id": 556,
        "message": {
            "message_id": 10,
            "from": {"id": 42, "username": "tester"},
            "chat": {"id": 4200},
            "text": text,
        },
    }


class TestParseTelegramUpdate:
    def test_callback_query(self) -> None:
        update = parse_telegram_update(callback_update())

        assert update.kind == UpdateKind.CALLBACK_QUERY
        assert update.update_id == 555
        assert update.user_id == 42
        assert update.chat_id == 4200
        assert update.username == "tester"
        assert update.callback_query_id == "cbq-1"
        assert update.callback_data == "answer_0_1"
        assert update.source_message_id == 77
        assert update.source_text is not None
        assert update.source_text.startswith("Как давно")

    def test_callback_without_message_replies_to_user(self) -> None:
        payload = callback_update()
        del payload["callback_query"]["message"]

        update = parse_telegram_update(payload)

        assert update.chat_id == 42
        assert update.source_message_id is None
        assert update.source_text is None

    def test_callback_without_sender(self) -> None:
        payload = callback_update()
        del payload["callback_query"]["from"]

        with pytest.raises(UpdateParseError):
            parse_telegram_update(payload)

    def test_message(self) -> None:
        update = parse_telegram_update(message_update("/start@survey_bot extra"))

        assert update.kind == UpdateKind.MESSAGE
        assert update.user_id == 42
        assert update.chat_id == 4200
        assert update.command == "/start"

    def test_plain_text_has_no_command(self) -> None:
        assert parse_telegram_update(message_update("hello")).command is None

    def test_other_update_kinds(self) -> None:
        update = parse_telegram_update({"update_id": 1, "edited_message": {}})

        assert update.kind == UpdateKind.OTHER
        assert update.update_id == 1

    def test_non_object_payload(self) -> None:
        with pytest.raises(UpdateParseError):
            parse_telegram_update([1, 2])  # type: ignore[arg-type]


@pytest.fixture
def config() -> MessagingConfig:
    return MessagingConfig(api_base_url=API)


def ok(result: Any = True) -> httpx.Response:
    return httpx.Response(200, json={"ok": True, "result": result})


@pytest.mark.asyncio
class TestTelegramAdapter:
    @respx.mock
    async def test_send_message_with_keyboard(self, config: MessagingConfig) -> None:
        route = respx.post(f"{API}/bot{TOKEN}/sendMessage").mock(return_value=ok({"message_id": 9}))
        adapter = TelegramAdapter(TOKEN, config)

        result = await adapter.send_message(42, "Привет", [Button("A", "branch_a"), Button("B", "branch_b")])
        await adapter.close()

        assert result == {"message_id": 9}
        body = json.loads(route.calls.last.request.content)
        assert body == {
            "chat_id": 42,
            "text": "Привет",
            "reply_markup": {
                "inline_keyboard": [
                    [{"text": "A", "callback_data": "branch_a"}],
                    [{"text": "B", "callback_data": "branch_b"}],
                ]
            },
        }

    @respx.mock
    async def test_send_message_without_buttons(self, config: MessagingConfig) -> None:
        route = respx.post(f"{API}/bot{TOKEN}/sendMessage").mock(return_value=ok({"message_id": 9}))

        async with httpx.AsyncClient() as client:
            await TelegramAdapter(TOKEN, config, http_client=client).send_message(42, "text")

        assert "reply_markup" not in json.loads(route.calls.last.request.content)

    @respx.mock
    async def test_clear_keyboard(self, config: MessagingConfig) -> None:
        route = respx.post(f"{API}/bot{TOKEN}/editMessageReplyMarkup").mock(return_value=ok({}))

        async with httpx.AsyncClient() as client:
            await TelegramAdapter(TOKEN, config, http_client=client).edit_reply_markup(42, 77)

        body = json.loads(route.calls.last.request.content)
        assert body == {"chat_id": 42, "message_id": 77, "reply_markup": {"inline_keyboard": []}}

    @respx.mock
    async def test_edit_and_delete(self, config: MessagingConfig) -> None:
        edit = respx.post(f"{API}/bot{TOKEN}/editMessageText").mock(return_value=ok({}))
        delete = respx.post(f"{API}/bot{TOKEN}/deleteMessage").mock(return_value=ok(True))

        async with httpx.AsyncClient() as client:
            adapter = TelegramAdapter(TOKEN, config, http_client=client)
            await adapter.edit_message_text(42, 77, "new", [Button("A", "group_x_0")])
            deleted = await adapter.delete_message(42, 77)

        assert edit.called
        assert json.loads(edit.calls.last.request.content)["text"] == "new"
        assert deleted is True
        assert delete.called

    @respx.mock
    async def test_answer_callback_query(self, config: MessagingConfig) -> None:
        route = respx.post(f"{API}/bot{TOKEN}/answerCallbackQuery").mock(return_value=ok(True))

        async with httpx.AsyncClient() as client:
            adapter = TelegramAdapter(TOKEN, config, http_client=client)
            await adapter.answer_callback_query("cbq-1")
            await adapter.answer_callback_query("cbq-1", "Ошибка")

        bodies = [json.loads(c.request.content) for c in route.calls]
        assert bodies == [{"callback_query_id": "cbq-1"}, {"callback_query_id": "cbq-1", "text": "Ошибка"}]

    @respx.mock
    async def test_api_rejection(self, config: MessagingConfig) -> None:
        respx.post(f"{API}/bot{TOKEN}/deleteMessage").mock(
            return_value=httpx.Response(
                400,
                json={"ok": False, "error_code": 400, "description": "Bad Request: message to delete not found"},
            )
        )

        async with httpx.AsyncClient() as client:
            with pytest.raises(MessageDeliveryError) as exc_info:
                await TelegramAdapter(TOKEN, config, http_client=client).delete_message(42, 77)

        assert exc_info.value.error_code == "400"
        assert "not found" in str(exc_info.value)

    @respx.mock
    async def test_non_object_response_body(self, config: MessagingConfig) -> None:
        respx.post(f"{API}/bot{TOKEN}/sendMessage").mock(return_value=httpx.Response(200, json=["ok"]))

        async with httpx.AsyncClient() as client:
            with pytest.raises(MessageDeliveryError) as exc_info:
                await TelegramAdapter(TOKEN, config, http_client=client).send_message(42, "x")

        assert exc_info.value.error_code == "200"

    @respx.mock
    async def test_transport_error(self, config: MessagingConfig) -> None:
        respx.post(f"{API}/bot{TOKEN}/sendMessage").mock(side_effect=httpx.ConnectTimeout("timeout"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(MessageDeliveryError) as exc_info:
                await TelegramAdapter(TOKEN, config, http_client=client).send_message(42, "x")

        assert exc_info.value.error_code == "TRANSPORT_ERROR"

    async def test_ready_requires_token(self, config: MessagingConfig) -> None:
        assert TelegramAdapter(TOKEN, config).ready is True
        assert TelegramAdapter("", config).ready is False
