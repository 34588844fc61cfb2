"""
Delayed message scheduling: push service, sorted-set queue and its poller.
"""

from surveybot.scheduling.models import DelayedJob, DrainResult
from surveybot.scheduling.poller import DelayedJobPoller
from surveybot.scheduling.queue import DelayedJobQueue
from surveybot.scheduling.scheduler import (
    DelayedMessageScheduler,
    FallbackScheduler,
    PushScheduler,
    QueueScheduler,
)

__all__ = [
    "DelayedJob",
    "DelayedJobPoller",
    "DelayedJobQueue",
    "DelayedMessageScheduler",
    "DrainResult",
    "FallbackScheduler",
    "PushScheduler",
    "QueueScheduler",
]
