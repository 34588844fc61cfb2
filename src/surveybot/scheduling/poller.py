"""
Delayed-job poller.

Drains due jobs from the sorted set and sends them. Delivery is at-most-once:
a job is removed after its send attempt whether or not the send succeeded,
so a malformed or permanently failing job cannot block the queue.
"""
from __future__ import annotations

import asyncio
import time
from typing import Callable

from surveybot.dialogue.models import Button
from surveybot.dialogue.payloads import DELAYED_KEY, encode_post_final
from surveybot.messaging.interface import MessagingProvider
from surveybot.scheduling.models import DelayedJob, DrainResult
from surveybot.scheduling.queue import DelayedJobQueue
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def delayed_buttons(options: list[str] | None) -> list[Button]:
    """Follow-up buttons carry the placeholder key; the branch is found by prompt text."""
    return [Button(text=o, payload=encode_post_final(DELAYED_KEY, i)) for i, o in enumerate(options or [])]


async def send_delayed_job(provider: MessagingProvider, job: DelayedJob) -> None:
    await provider.send_message(job.user_id, job.message, delayed_buttons(job.options))


class DelayedJobPoller:
    """Sends every job whose due time has passed."""

    def __init__(
        self,
        queue: DelayedJobQueue,
        provider: MessagingProvider,
        batch_size: int = 50,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._queue = queue
        self._provider = provider
        self._batch_size = batch_size
        self._clock = clock

    async def drain(self) -> DrainResult:
        """One pass over due jobs. Queue read errors propagate to the caller."""
        now = self._clock()
        members = await self._queue.due(now, self._batch_size)

        sent = 0
        failed: list[str] = []
        for raw in members:
            try:
                job = DelayedJob.from_member(raw)
                await send_delayed_job(self._provider, job)
                sent += 1
            except Exception:
                logger.exception("Failed to process delayed job", extra={"member": raw})
                failed.append(raw)
            finally:
                try:
                    await self._queue.remove(raw)
                except Exception:
                    logger.exception("Failed to remove delayed job", extra={"member": raw})

        if members:
            logger.info(
                "Delayed jobs drained",
                extra={"processed": len(members), "sent": sent, "failed": len(failed)},
            )
        return DrainResult(processed=len(members), sent=sent, failed=failed)

    async def run_forever(self, interval_seconds: int) -> None:
        """Drain on a fixed interval until cancelled."""
        logger.info("Delayed job poller starting", extra={"interval_seconds": interval_seconds})
        while True:
            try:
                await self.drain()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Delayed job poller tick failed")
            await asyncio.sleep(interval_seconds)
