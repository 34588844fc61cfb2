"""
Delayed-job queue over a Redis sorted set.

Score is the due time in epoch milliseconds, member the serialized job.
Members are removed by exact value, so concurrent pollers removing the same
job are harmless.
"""
from __future__ import annotations

from typing import Any

import redis.asyncio as redis

from surveybot.scheduling.models import DelayedJob
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_QUEUE_KEY = "delayed-jobs"


class DelayedJobQueue:
    """Sorted-set backed job queue."""

    def __init__(
        self,
        redis_url: str | None = None,
        token: str | None = None,
        key: str = DEFAULT_QUEUE_KEY,
        client: Any | None = None,
    ) -> None:
        if client is None and not redis_url:
            raise ValueError("DelayedJobQueue needs either redis_url or client")
        self._redis_url = redis_url
        self._token = token or None
        self._key = key
        self._client = client
        self._owns_client = client is None

    @property
    def key(self) -> str:
        return self._key

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                password=self._token,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def add(self, job: DelayedJob) -> str:
        member = job.to_member()
        await self._get_client().zadd(self._key, {member: job.due_at})
        return member

    async def due(self, now_ms: int, limit: int = 50) -> list[str]:
        """Raw members with score in ``[0, now_ms]``, oldest first, at most ``limit``."""
        return list(await self._get_client().zrangebyscore(self._key, 0, now_ms, start=0, num=limit))

    async def remove(self, member: str) -> int:
        return int(await self._get_client().zrem(self._key, member))

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
