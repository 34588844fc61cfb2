"""Tests for the delayed-jobs queue and its poller."""

from __future__ import annotations

import pytest

from surveybot.messaging.mock_adapter import MockMessagingAdapter
from surveybot.scheduling.models import DelayedJob
from surveybot.scheduling.poller import DelayedJobPoller, delayed_buttons
from surveybot.scheduling.queue import DelayedJobQueue

from conftest import FakeRedis

NOW_MS = 1_700_000_000_000


@pytest.fixture
def queue(fake_redis: FakeRedis) -> DelayedJobQueue:
    return DelayedJobQueue(client=fake_redis)


@pytest.fixture
def poller(queue: DelayedJobQueue, mock_provider: MockMessagingAdapter) -> DelayedJobPoller:
    return DelayedJobPoller(queue, mock_provider, batch_size=50, clock=lambda: NOW_MS)


class TestDelayedJob:
    def test_member_round_trip(self) -> None:
        job = DelayedJob(user_id=5, message="Привет", options=["A"], due_at=NOW_MS)

        assert DelayedJob.from_member(job.to_member()) == job

    @pytest.mark.parametrize(
        "payload",
        [
            {"message": "m"},
            {"userId": 1},
            {"userId": "", "message": "m"},
            {"userId": 1, "message": ""},
            {"userId": 1, "message": "m", "options": "A"},
        ],
    )
    def test_invalid_payloads(self, payload: dict) -> None:
        with pytest.raises(ValueError):
            DelayedJob.from_payload(payload)

    def test_non_object_member(self) -> None:
        with pytest.raises(ValueError):
            DelayedJob.from_member("[1]")

    def test_delayed_buttons_use_placeholder_key(self) -> None:
        buttons = delayed_buttons(["A", "B"])

        assert [b.payload for b in buttons] == ["postfinal_delayed_0", "postfinal_delayed_1"]
        assert delayed_buttons(None) == []


@pytest.mark.asyncio
class TestQueue:
    async def test_due_respects_score_and_limit(self, queue: DelayedJobQueue) -> None:
        for offset in (-30, -20, -10, 10):
            await queue.add(DelayedJob(user_id=1, message=f"m{offset}", due_at=NOW_MS + offset))

        due = await queue.due(NOW_MS, limit=2)

        assert [DelayedJob.from_member(m).message for m in due] == ["m-30", "m-20"]

    async def test_remove(self, queue: DelayedJobQueue, fake_redis: FakeRedis) -> None:
        member = await queue.add(DelayedJob(user_id=1, message="m", due_at=NOW_MS))

        assert await queue.remove(member) == 1
        assert await queue.remove(member) == 0
        assert fake_redis.zsets["delayed-jobs"] == {}


@pytest.mark.asyncio
class TestDrain:
    async def test_sends_only_due_jobs(
        self,
        queue: DelayedJobQueue,
        poller: DelayedJobPoller,
        mock_provider: MockMessagingAdapter,
        fake_redis: FakeRedis,
    ) -> None:
        await queue.add(DelayedJob(user_id=1, message="due", options=["A", "B"], due_at=NOW_MS - 10))
        await queue.add(DelayedJob(user_id=2, message="later", due_at=NOW_MS + 10))

        result = await poller.drain()

        assert (result.processed, result.sent, result.failed) == (1, 1, [])
        sends = mock_provider.calls_of("send_message")
        assert len(sends) == 1
        assert sends[0]["chat_id"] == 1
        assert sends[0]["text"] == "due"
        assert [b.payload for b in sends[0]["buttons"]] == ["postfinal_delayed_0", "postfinal_delayed_1"]
        remaining = [DelayedJob.from_member(m).message for m in fake_redis.zsets["delayed-jobs"]]
        assert remaining == ["later"]

    async def test_failed_send_is_still_removed(
        self,
        queue: DelayedJobQueue,
        poller: DelayedJobPoller,
        mock_provider: MockMessagingAdapter,
        fake_redis: FakeRedis,
    ) -> None:
        mock_provider.configure_failure("send_message")
        member = await queue.add(DelayedJob(user_id=1, message="due", due_at=NOW_MS - 10))

        result = await poller.drain()

        assert result.processed == 1
        assert result.sent == 0
        assert result.failed == [member]
        assert fake_redis.zsets["delayed-jobs"] == {}

    async def test_malformed_member_is_removed(
        self,
        poller: DelayedJobPoller,
        mock_provider: MockMessagingAdapter,
        fake_redis: FakeRedis,
    ) -> None:
        fake_redis.zsets["delayed-jobs"] = {"not json": NOW_MS - 1, '{"userId": 3}': NOW_MS - 1}

        result = await poller.drain()

        assert result.processed == 2
        assert len(result.failed) == 2
        assert mock_provider.calls == []
        assert fake_redis.zsets["delayed-jobs"] == {}

    async def test_batch_size_limits_one_pass(
        self,
        queue: DelayedJobQueue,
        mock_provider: MockMessagingAdapter,
    ) -> None:
        poller = DelayedJobPoller(queue, mock_provider, batch_size=2, clock=lambda: NOW_MS)
        for i in range(3):
            await queue.add(DelayedJob(user_id=i, message=f"m{i}", due_at=NOW_MS - 100 + i))

        first = await poller.drain()
        second = await poller.drain()

        assert (first.processed, second.processed) == (2, 1)

    async def test_empty_queue(self, poller: DelayedJobPoller) -> None:
        result = await poller.drain()

        assert result.processed == 0
