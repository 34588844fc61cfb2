"""
Delayed message scheduling.

Two strategies share one interface:
- ``PushScheduler`` hands the job to an external delayed-delivery HTTP
  service which later calls back ``/dispatch-delayed``;
- ``QueueScheduler`` stores it in the delayed-jobs sorted set for the poller.

``FallbackScheduler`` tries the configured strategies in order. Callers never
learn which one took the job.
"""
from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Callable, Sequence

import httpx

from surveybot.scheduling.models import DelayedJob
from surveybot.scheduling.queue import DelayedJobQueue
from surveybot.shared.exceptions import SchedulingError
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class DelayedMessageScheduler(ABC):
    """Hands a future message to a delivery mechanism."""

    name: str = "scheduler"

    @abstractmethod
    async def submit(
        self,
        user_id: int,
        message: str,
        options: list[str] | None,
        delay_ms: int,
    ) -> None:
        """Submit the job.

        Raises:
            SchedulingError: when the job was not accepted.
        """
        ...

    async def schedule_delayed_message(
        self,
        user_id: int,
        message: str,
        options: list[str] | None,
        delay_ms: int,
    ) -> bool:
        """Submit without raising. Returns whether the job was accepted."""
        try:
            await self.submit(user_id, message, options, delay_ms)
        except SchedulingError as exc:
            logger.error(
                "Failed to schedule delayed message",
                extra={"strategy": self.name, "user_id": user_id, "error": str(exc)},
            )
            return False
        return True

    async def close(self) -> None:
        return None


class PushScheduler(DelayedMessageScheduler):
    """QStash-style push scheduling: the service POSTs the body back after the delay."""

    name = "push"

    def __init__(
        self,
        token: str,
        target_url: str,
        service_url: str = "https://qstash.upstash.io",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._token = token
        self._target_url = target_url
        self._service_url = service_url.rstrip("/")
        self._http_client = http_client
        self._owns_client = http_client is None
        self._timeout_seconds = timeout_seconds

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_seconds))
        return self._http_client

    @property
    def publish_url(self) -> str:
        return f"{self._service_url}/v2/publish/{self._target_url}"

    async def submit(
        self,
        user_id: int,
        message: str,
        options: list[str] | None,
        delay_ms: int,
    ) -> None:
        delay_seconds = max(0, delay_ms // 1000)
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
            "Upstash-Delay": f"{delay_seconds}s",
        }
        body = {"userId": user_id, "message": message, "options": options}

        try:
            response = await self._get_client().post(self.publish_url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise SchedulingError(
                f"Push scheduling request failed: {exc}",
                error_code="PUSH_TRANSPORT_ERROR",
            ) from exc

        if not response.is_success:
            raise SchedulingError(
                f"Push scheduling rejected with status {response.status_code}",
                error_code="PUSH_REJECTED",
                details={"status": response.status_code, "body": response.text[:500]},
            )

        logger.info(
            "Push-scheduled delayed message",
            extra={"user_id": user_id, "delay_seconds": delay_seconds},
        )

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


class QueueScheduler(DelayedMessageScheduler):
    """Stores the job in the delayed-jobs sorted set, scored by due time."""

    name = "queue"

    def __init__(self, queue: DelayedJobQueue, clock: Callable[[], int] = _now_ms) -> None:
        self._queue = queue
        self._clock = clock

    async def submit(
        self,
        user_id: int,
        message: str,
        options: list[str] | None,
        delay_ms: int,
    ) -> None:
        job = DelayedJob(
            user_id=user_id,
            message=message,
            options=list(options) if options else None,
            due_at=self._clock() + max(0, delay_ms),
        )
        try:
            await self._queue.add(job)
        except Exception as exc:
            raise SchedulingError(
                f"Failed to enqueue delayed message: {exc}",
                error_code="QUEUE_WRITE_FAILED",
            ) from exc

        logger.info(
            "Queued delayed message",
            extra={"user_id": user_id, "due_at": job.due_at, "queue": self._queue.key},
        )

    async def close(self) -> None:
        await self._queue.close()


class FallbackScheduler(DelayedMessageScheduler):
    """Tries each strategy in order until one accepts the job."""

    name = "fallback"

    def __init__(self, strategies: Sequence[DelayedMessageScheduler]) -> None:
        self._strategies = list(strategies)

    @property
    def strategies(self) -> list[DelayedMessageScheduler]:
        return list(self._strategies)

    async def submit(
        self,
        user_id: int,
        message: str,
        options: list[str] | None,
        delay_ms: int,
    ) -> None:
        if not self._strategies:
            raise SchedulingError(
                "No delayed delivery strategy configured",
                error_code="NOT_CONFIGURED",
            )

        errors: list[str] = []
        for strategy in self._strategies:
            try:
                await strategy.submit(user_id, message, options, delay_ms)
                return
            except SchedulingError as exc:
                logger.warning(
                    "Scheduling strategy failed, trying next",
                    extra={"strategy": strategy.name, "user_id": user_id, "error": str(exc)},
                )
                errors.append(f"{strategy.name}: {exc}")

        raise SchedulingError(
            "All scheduling strategies failed",
            error_code="ALL_STRATEGIES_FAILED",
            details={"errors": errors},
        )

    async def schedule_delayed_message(
        self,
        user_id: int,
        message: str,
        options: list[str] | None,
        delay_ms: int,
    ) -> bool:
        if not self._strategies:
            logger.warning(
                "No push service or queue configured; delayed message cannot be scheduled",
                extra={"user_id": user_id},
            )
            return False
        return await super().schedule_delayed_message(user_id, message, options, delay_ms)

    async def close(self) -> None:
        for strategy in self._strategies:
            await strategy.close()
