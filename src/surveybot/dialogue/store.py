"""
Conversation state stores.

The engine only talks to ``StateStore``. The in-memory store lives as long as
the process; the Redis store survives restarts and is shared between
instances.
"""
from __future__ import annotations

import copy
import json
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as redis

from surveybot.dialogue.models import ConversationState
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)


class StateStore(ABC):
    """Key-value store of ConversationState keyed by user id."""

    @abstractmethod
    async def get(self, user_id: int) -> ConversationState | None:
        """Return the user's state, or None if nothing is stored."""
        ...

    @abstractmethod
    async def set(self, user_id: int, state: ConversationState) -> None:
        """Replace the user's state."""
        ...

    async def close(self) -> None:
        return None


class InMemoryStateStore(StateStore):
    """Process-local store. Returns copies so callers must ``set`` to persist."""

    def __init__(self) -> None:
        self._states: dict[int, ConversationState] = {}

    async def get(self, user_id: int) -> ConversationState | None:
        state = self._states.get(user_id)
        return copy.deepcopy(state) if state is not None else None

    async def set(self, user_id: int, state: ConversationState) -> None:
        self._states[user_id] = copy.deepcopy(state)

    def clear(self) -> None:
        self._states.clear()

    def __len__(self) -> int:
        return len(self._states)


class RedisStateStore(StateStore):
    """Redis-backed store, one JSON document per user."""

    def __init__(
        self,
        redis_url: str | None = None,
        client: Any | None = None,
        key_prefix: str = "surveybot:state:",
        ttl_seconds: int = 0,
    ) -> None:
        if client is None and not redis_url:
            raise ValueError("RedisStateStore needs either redis_url or client")
        self._redis_url = redis_url
        self._client = client
        self._owns_client = client is None
        self._key_prefix = key_prefix
        self._ttl_seconds = ttl_seconds

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    def _key(self, user_id: int) -> str:
        return f"{self._key_prefix}{user_id}"

    async def get(self, user_id: int) -> ConversationState | None:
        raw = await self._get_client().get(self._key(user_id))
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable conversation state", extra={"user_id": user_id})
            return None
        if not isinstance(data, dict):
            return None
        return ConversationState.from_dict(data)

    async def set(self, user_id: int, state: ConversationState) -> None:
        serialized = json.dumps(state.to_dict(), ensure_ascii=False)
        client = self._get_client()
        if self._ttl_seconds > 0:
            await client.set(self._key(user_id), serialized, ex=self._ttl_seconds)
        else:
            await client.set(self._key(user_id), serialized)

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
