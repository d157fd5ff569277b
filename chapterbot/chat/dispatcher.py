"""
Inbound command handling.

One consumer, arrival order preserved:
  /start  → welcome message, subscribe, report the latest known chapter
  /stop   → unsubscribe
Everything else, and events without a sending user, is ignored.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from chapterbot.broadcast.channel import until_set
from chapterbot.chat.telegram import EventSource, MessageSender
from chapterbot.config import (
    LATEST_CHAPTER_MESSAGE, SERIES_NAME, START_MESSAGE, TELEGRAM_ERROR_PAUSE_SECONDS,
)
from chapterbot.errors import DeliveryError, ReceiveError, StoreUnavailable
from chapterbot.models import ChatEvent
from chapterbot.storage.base import ChapterStore, SubscriberRegistry

log = logging.getLogger(__name__)

START = "/start"
STOP = "/stop"


def parse_command(text: str) -> Optional[str]:
    """'/start@my_bot extra' → '/start'. None when the text is not a command."""
    if not text.startswith("/"):
        return None
    token = text.split(maxsplit=1)[0]
    return token.split("@", 1)[0].lower()


class CommandDispatcher:
    def __init__(
        self,
        registry: SubscriberRegistry,
        chapters: ChapterStore,
        sender: MessageSender,
        series: str = SERIES_NAME,
        error_pause: float = TELEGRAM_ERROR_PAUSE_SECONDS,
    ) -> None:
        self._registry = registry
        self._chapters = chapters
        self._sender = sender
        self._series = series
        self._error_pause = error_pause

    async def run(self, source: EventSource, stop: asyncio.Event) -> None:
        """Handle events from `source` one at a time until `stop` is set."""
        log.info("Command dispatcher started")
        while not stop.is_set():
            try:
                done, events = await until_set(source.fetch(), stop)
            except ReceiveError as exc:
                log.error("%s", exc)
                await until_set(asyncio.sleep(self._error_pause), stop)
                continue
            except Exception:
                log.exception("Unexpected error while receiving updates")
                await until_set(asyncio.sleep(self._error_pause), stop)
                continue
            if not done:
                break
            for event in events:
                try:
                    await self.handle(event)
                except Exception:
                    log.exception("Failed to handle update from chat %s", event.chat_id)
        log.info("Command dispatcher stopped")

    async def handle(self, event: ChatEvent) -> Optional[str]:
        """Dispatch one event; returns the command acted on, if any."""
        if event.user_id is None:
            return None
        command = parse_command(event.text)
        if command == START:
            await self._start(event.chat_id)
        elif command == STOP:
            await self._stop(event.chat_id)
        else:
            return None
        return command

    async def _start(self, chat_id: int) -> None:
        # Each step runs even if the one before it failed.
        try:
            await self._sender.send(chat_id, START_MESSAGE, html=True)
        except DeliveryError as exc:
            log.error("Couldn't send start message: %s", exc)

        try:
            await self._registry.add(chat_id)
            log.info("Subscribed chat %s", chat_id)
        except StoreUnavailable as exc:
            log.error("Couldn't add user %s: %s", chat_id, exc)

        try:
            pointer = await self._chapters.get()
        except StoreUnavailable as exc:
            log.error("Couldn't get latest chapter: %s", exc)
            return
        text = LATEST_CHAPTER_MESSAGE.format(series=self._series, url=pointer.url)
        try:
            await self._sender.send(chat_id, text)
        except DeliveryError as exc:
            log.error("Couldn't send latest chapter: %s", exc)

    async def _stop(self, chat_id: int) -> None:
        try:
            await self._registry.remove(chat_id)
            log.info("Unsubscribed chat %s", chat_id)
        except StoreUnavailable as exc:
            log.error("Couldn't remove user %s: %s", chat_id, exc)
