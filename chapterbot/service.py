"""
Bot runtime: wires the three loops and owns the shutdown signal.

  scheduler (poll job) → BroadcastChannel → Broadcaster task → subscribers
  TelegramUpdates → CommandDispatcher task → registry / replies

stop() sets the shared event, closes the channel and shuts the scheduler
down, so no loop waits out a poll interval or blocks on an empty channel.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from chapterbot import config
from chapterbot.broadcast.broadcaster import Broadcaster
from chapterbot.broadcast.channel import BroadcastChannel
from chapterbot.chat.dispatcher import CommandDispatcher
from chapterbot.chat.telegram import (
    EventSource, MessageSender, TelegramSender, TelegramUpdates, open_bot,
)
from chapterbot.errors import ChapterNotSeeded, ConfigError
from chapterbot.scheduler.jobs import setup_scheduler
from chapterbot.scheduler.poller import Poller
from chapterbot.scraper import PageFetcher, create_http_client
from chapterbot.storage.base import ChapterStore, SubscriberRegistry
from chapterbot.storage.mongo import (
    MongoChapterStore, MongoSubscriberRegistry, create_client, ping,
)

log = logging.getLogger(__name__)

STOP_GRACE_SECONDS = 10.0


class BotService:
    def __init__(
        self,
        chapters: ChapterStore,
        registry: SubscriberRegistry,
        sender: MessageSender,
        source: EventSource,
        fetcher: PageFetcher,
        *,
        series: str = config.SERIES_NAME,
        series_slug: str = config.SERIES_SLUG,
        base_url: str = config.CHAPTER_BASE_URL,
        poll_interval: int = config.POLL_INTERVAL_SECONDS,
        concurrency: int = config.BROADCAST_CONCURRENCY,
    ) -> None:
        self.chapters = chapters
        self.registry = registry
        self._source = source
        self._poll_interval = poll_interval

        self.stop_event = asyncio.Event()
        self.channel = BroadcastChannel()
        self.poller = Poller(
            chapters, fetcher, self.channel, self.stop_event,
            base_url=base_url, series_slug=series_slug,
        )
        self.broadcaster = Broadcaster(
            self.channel, registry, sender, series=series, concurrency=concurrency,
        )
        self.dispatcher = CommandDispatcher(registry, chapters, sender, series=series)

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._tasks: list[asyncio.Task] = []
        self._manual_polls: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self.stop_event.is_set()

    async def start(self) -> None:
        self._tasks = [
            asyncio.create_task(self.broadcaster.run(), name="broadcaster"),
            asyncio.create_task(
                self.dispatcher.run(self._source, self.stop_event), name="dispatcher",
            ),
        ]
        self._scheduler = setup_scheduler(self.poller, self._poll_interval)
        log.info("Start listening for updates")

    def trigger_poll(self) -> asyncio.Task:
        """Run one poll cycle now, outside the schedule."""
        task = asyncio.create_task(self.poller.poll_once())
        self._manual_polls.add(task)
        task.add_done_callback(self._manual_polls.discard)
        return task

    async def stop(self) -> None:
        if self.stop_event.is_set():
            return
        self.stop_event.set()
        self.channel.close()
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)

        pending = self._tasks + list(self._manual_polls)
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=STOP_GRACE_SECONDS)
        for task in still_running:
            log.warning("Task %s did not stop in time, cancelling", task.get_name())
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        log.info("Bot stopped")


@asynccontextmanager
async def open_service() -> AsyncIterator[BotService]:
    """Connect to Mongo and Telegram, start the bot, stop it on exit.

    Raises ConfigError / StoreUnavailable before anything starts when a
    setting is missing, Mongo is unreachable, the chapter pointer was never
    seeded, or the bot token is rejected.
    """
    missing = config.missing_settings()
    if missing:
        raise ConfigError(f"missing required settings: {', '.join(missing)}")

    mongo = create_client(config.MONGO_URI)
    try:
        await ping(mongo)
        db = mongo[config.MONGO_DB_NAME]
        chapters = MongoChapterStore(db)
        registry = MongoSubscriberRegistry(db)
        await registry.ensure_indexes()
        try:
            pointer = await chapters.get()
        except ChapterNotSeeded as exc:
            raise ConfigError(
                "no chapter pointer in the database; run `chapterbot seed` first"
            ) from exc
        log.info("Latest known chapter: %d (%s)", pointer.chapter_number, pointer.url)

        bot = await open_bot(config.TELEGRAM_HTTP_API_TOKEN)
        try:
            async with create_http_client() as http:
                service = BotService(
                    chapters,
                    registry,
                    TelegramSender(bot),
                    TelegramUpdates(bot),
                    PageFetcher(http, config.SCRAPE_URL),
                )
                await service.start()
                try:
                    yield service
                finally:
                    await service.stop()
        finally:
            await bot.shutdown()
    finally:
        await mongo.close()
