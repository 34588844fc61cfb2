"""
Scheduler construction from configuration presence.
"""
from __future__ import annotations

from surveybot.config import Settings
from surveybot.scheduling.queue import DelayedJobQueue
from surveybot.scheduling.scheduler import (
    DelayedMessageScheduler,
    FallbackScheduler,
    PushScheduler,
    QueueScheduler,
)
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)


def build_queue(settings: Settings) -> DelayedJobQueue | None:
    if not settings.queue_configured:
        return None
    return DelayedJobQueue(
        redis_url=settings.queue_redis_url,
        token=settings.queue_redis_token,
        key=settings.queue_key,
    )


def build_scheduler(settings: Settings, queue: DelayedJobQueue | None = None) -> FallbackScheduler:
    """Push service first (when configured), then the queue (when configured)."""
    strategies: list[DelayedMessageScheduler] = []
    if settings.push_scheduling_configured:
        strategies.append(
            PushScheduler(
                token=settings.qstash_token,
                target_url=settings.dispatch_url,
                service_url=settings.qstash_url,
            )
        )
    if queue is None:
        queue = build_queue(settings)
    if queue is not None:
        strategies.append(QueueScheduler(queue))

    logger.info(
        "Delayed scheduling resolved",
        extra={"strategies": [s.name for s in strategies]},
    )
    return FallbackScheduler(strategies)
