"""
Fan-out of chapter notifications to every subscriber.

Drains the BroadcastChannel; for each URL takes one registry snapshot and
sends the "is out" message to each chat. Delivery is best effort: a failed
send is logged and the rest still go out. Nothing is retried.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from chapterbot.broadcast.channel import BroadcastChannel
from chapterbot.chat.telegram import MessageSender
from chapterbot.config import BROADCAST_CONCURRENCY, CHAPTER_OUT_MESSAGE, SERIES_NAME
from chapterbot.errors import ChannelClosed, DeliveryError, StoreUnavailable
from chapterbot.storage.base import SubscriberRegistry

log = logging.getLogger(__name__)


def chapter_token(url: str) -> str:
    """Last '-'-separated segment: '.../one-piece-chapter-1099' → '1099'."""
    return url.rsplit("-", 1)[-1]


def format_chapter_out(url: str, series: str = SERIES_NAME) -> str:
    return CHAPTER_OUT_MESSAGE.format(series=series, chapter=chapter_token(url), url=url)


@dataclass
class DeliveryReport:
    url: str
    delivered: set[int] = field(default_factory=set)
    failed: set[int] = field(default_factory=set)


class Broadcaster:
    def __init__(
        self,
        channel: BroadcastChannel,
        registry: SubscriberRegistry,
        sender: MessageSender,
        series: str = SERIES_NAME,
        concurrency: int = BROADCAST_CONCURRENCY,
    ) -> None:
        self._channel = channel
        self._registry = registry
        self._sender = sender
        self._series = series
        self._concurrency = max(1, concurrency)

    async def run(self) -> None:
        """Consume notifications until the channel is closed."""
        log.info("Broadcaster started")
        while True:
            try:
                url = await self._channel.get()
            except ChannelClosed:
                break
            try:
                await self.deliver(url)
            except Exception:
                log.exception("Broadcast of %s failed", url)
        log.info("Broadcaster stopped")

    async def deliver(self, url: str) -> DeliveryReport | None:
        """Send one notification to the current subscribers.

        Returns None when the registry could not be read.
        """
        try:
            chat_ids = await self._registry.list()
        except StoreUnavailable as exc:
            log.error("Couldn't get subscribers, dropping notification for %s: %s", url, exc)
            return None

        report = DeliveryReport(url=url)
        text = format_chapter_out(url, self._series)
        sem = asyncio.Semaphore(self._concurrency)

        async def _send(chat_id: int) -> None:
            async with sem:
                try:
                    await self._sender.send(chat_id, text)
                except DeliveryError as exc:
                    log.warning("%s", exc)
                    report.failed.add(chat_id)
                except Exception:
                    log.exception("Unexpected error sending to chat %s", chat_id)
                    report.failed.add(chat_id)
                else:
                    report.delivered.add(chat_id)

        await asyncio.gather(*(_send(c) for c in chat_ids))
        log.info(
            "Notified %d/%d subscribers about %s",
            len(report.delivered), len(chat_ids), url,
        )
        return report
