"""
Pytest configuration and fixtures.
"""
from __future__ import annotations

from typing import Any

import pytest

from surveybot.config import Settings
from surveybot.dialogue.content import load_dialogue
from surveybot.dialogue.engine import DialogueEngine, UserRef
from surveybot.dialogue.models import AnswerRecord, ConversationState, DialogueDefinition
from surveybot.dialogue.store import InMemoryStateStore
from surveybot.messaging.mock_adapter import MockMessagingAdapter
from surveybot.shared.exceptions import ExportError


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeRedis:
    """Just enough of redis.asyncio.Redis for the store and the queue."""

    def __init__(self) -> None:
        self.kv: dict[str, str] = {}
        self.expiry: dict[str, int | None] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.fail_writes = False
        self.closed = False

    async def get(self, key: str) -> str | None:
        return self.kv.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.kv[key] = value
        self.expiry[key] = ex
        return True

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        if self.fail_writes:
            raise ConnectionError("redis unavailable")
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update(mapping)
        return added

    async def zrangebyscore(
        self,
        key: str,
        min: float,
        max: float,
        start: int | None = None,
        num: int | None = None,
    ) -> list[str]:
        items = sorted((score, member) for member, score in self.zsets.get(key, {}).items())
        members = [member for score, member in items if min <= score <= max]
        if start is not None and num is not None:
            members = members[start:start + num]
        return members

    async def zrem(self, key: str, *members: str) -> int:
        zset = self.zsets.get(key, {})
        removed = 0
        for member in members:
            if member in zset:
                del zset[member]
                removed += 1
        return removed

    async def aclose(self) -> None:
        self.closed = True


class FakeExporter:
    """Records exports; can be told to fail."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.should_fail = False

    async def export(self, username: str | None, branch_label: str, answers: list[AnswerRecord]) -> None:
        self.calls.append({"username": username, "branch_label": branch_label, "answers": list(answers)})
        if self.should_fail:
            raise ExportError("Failed to send email: boom", error_code="MAIL_FAILED")


class FakeScheduler:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def schedule_delayed_message(
        self,
        user_id: int,
        message: str,
        options: list[str] | None,
        delay_ms: int,
    ) -> bool:
        self.calls.append({"user_id": user_id, "message": message, "options": options, "delay_ms": delay_ms})
        return True


class SpyStore(InMemoryStateStore):
    """In-memory store that counts writes."""

    def __init__(self) -> None:
        super().__init__()
        self.writes = 0

    async def set(self, user_id: int, state: ConversationState) -> None:
        self.writes += 1
        await super().set(user_id, state)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def dialogue() -> DialogueDefinition:
    return load_dialogue()


@pytest.fixture
def store() -> SpyStore:
    return SpyStore()


@pytest.fixture
def exporter() -> FakeExporter:
    return FakeExporter()


@pytest.fixture
def fake_scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def engine(dialogue: DialogueDefinition, store: SpyStore, exporter: FakeExporter) -> DialogueEngine:
    return DialogueEngine(dialogue=dialogue, store=store, exporter=exporter)


@pytest.fixture
def user() -> UserRef:
    return UserRef(user_id=4242, username="tester")


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def mock_provider() -> MockMessagingAdapter:
    return MockMessagingAdapter()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        bot_token="123456:TEST",
        recipient_email="results@example.com",
        smtp_host="smtp.example.com",
        smtp_port=465,
        smtp_user="bot@example.com",
        smtp_pass="secret",
        qstash_token="",
        public_base_url="",
        queue_redis_url="",
        state_redis_url="",
        followup_enabled=False,
        embed_branch_key=False,
        queue_poller_enabled=False,
    )
