"""
Wiring of the bot's collaborators.

Built once per application; routes reach it through ``request.app.state``.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field

from surveybot.config import Settings
from surveybot.dialogue.content import load_dialogue
from surveybot.dialogue.engine import DialogueEngine
from surveybot.dialogue.store import InMemoryStateStore, RedisStateStore, StateStore
from surveybot.export.config import EmailConfig
from surveybot.export.exporter import ResultExporter
from surveybot.export.smtp_provider import SMTPEmailProvider
from surveybot.messaging.config import get_messaging_config
from surveybot.messaging.factory import build_messaging_provider
from surveybot.messaging.interface import MessagingProvider
from surveybot.messaging.webhooks.handler import UpdateHandler
from surveybot.scheduling.factory import build_queue, build_scheduler
from surveybot.scheduling.poller import DelayedJobPoller
from surveybot.scheduling.queue import DelayedJobQueue
from surveybot.scheduling.scheduler import DelayedMessageScheduler


@dataclass
class BotComponents:
    settings: Settings
    provider: MessagingProvider
    store: StateStore
    engine: DialogueEngine
    handler: UpdateHandler
    scheduler: DelayedMessageScheduler | None = None
    queue: DelayedJobQueue | None = None
    poller: DelayedJobPoller | None = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at

    async def close(self) -> None:
        await self.provider.close()
        await self.store.close()
        if self.scheduler is not None:
            await self.scheduler.close()
        elif self.queue is not None:
            await self.queue.close()


def build_state_store(settings: Settings) -> StateStore:
    if settings.state_redis_url:
        return RedisStateStore(redis_url=settings.state_redis_url, ttl_seconds=settings.state_ttl_seconds)
    return InMemoryStateStore()


def build_components(settings: Settings) -> BotComponents:
    provider = build_messaging_provider(settings.bot_token, get_messaging_config())
    store = build_state_store(settings)
    queue = build_queue(settings)
    scheduler = build_scheduler(settings, queue=queue)
    exporter = ResultExporter(
        provider=SMTPEmailProvider(EmailConfig.from_settings(settings)),
        config=EmailConfig.from_settings(settings),
    )
    engine = DialogueEngine(
        dialogue=load_dialogue(settings.dialogue_path or None),
        store=store,
        exporter=exporter,
        scheduler=scheduler,
        followup_delay_ms=settings.followup_delay_seconds * 1000 if settings.followup_enabled else None,
        embed_branch_key=settings.embed_branch_key,
    )
    poller = (
        DelayedJobPoller(queue, provider, batch_size=settings.queue_batch_size)
        if queue is not None
        else None
    )
    return BotComponents(
        settings=settings,
        provider=provider,
        store=store,
        engine=engine,
        handler=UpdateHandler(provider=provider, engine=engine),
        scheduler=scheduler,
        queue=queue,
        poller=poller,
    )
