"""
Chapter detection.

Each cycle reads the pointer (chapter N), looks for the path of chapter N+1
in the scraped page, and on a hit hands the full URL to the broadcaster and
advances the pointer to N+1. A miss, a failed fetch or a store error leaves
everything as it was; the next scheduled cycle is the only retry.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional

from chapterbot.broadcast.channel import BroadcastChannel
from chapterbot.config import CHAPTER_BASE_URL, SERIES_SLUG
from chapterbot.errors import ChannelClosed, FetchError, StoreUnavailable
from chapterbot.scraper import PageFetcher
from chapterbot.storage.base import ChapterStore

log = logging.getLogger(__name__)


def detection_pattern(series_slug: str, chapter_number: int) -> re.Pattern[str]:
    """`/chapters/<digits>/<slug>-chapter-<n>`, not followed by another digit."""
    return re.compile(
        r"/chapters/\d+/"
        + re.escape(f"{series_slug}-chapter-{chapter_number}")
        + r"(?!\d)"
    )


def find_chapter(body: str, series_slug: str, chapter_number: int) -> Optional[str]:
    match = detection_pattern(series_slug, chapter_number).search(body)
    return match.group(0) if match else None


def join_url(base_url: str, fragment: str) -> str:
    return base_url.rstrip("/") + fragment


class Poller:
    def __init__(
        self,
        store: ChapterStore,
        fetcher: PageFetcher,
        channel: BroadcastChannel,
        stop: asyncio.Event,
        base_url: str = CHAPTER_BASE_URL,
        series_slug: str = SERIES_SLUG,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._channel = channel
        self._stop = stop
        self._base_url = base_url
        self._series_slug = series_slug
        # Scheduled and manually triggered cycles must not overlap
        self._cycle_lock = asyncio.Lock()

    async def poll_once(self) -> Optional[str]:
        """Run one detection cycle. Returns the new chapter URL, or None."""
        async with self._cycle_lock:
            return await self._cycle()

    async def _cycle(self) -> Optional[str]:
        if self._stop.is_set():
            return None

        try:
            pointer = await self._store.get()
        except StoreUnavailable as exc:
            log.error("Couldn't get latest chapter: %s", exc)
            return None

        next_number = pointer.chapter_number + 1

        if self._stop.is_set():
            return None
        try:
            body = await self._fetcher.fetch()
        except FetchError as exc:
            log.warning("%s", exc)
            return None

        fragment = find_chapter(body, self._series_slug, next_number)
        if fragment is None:
            log.info("Chapter %d not out yet", next_number)
            return None

        url = join_url(self._base_url, fragment)
        log.info("Chapter %d detected at %s", next_number, url)

        try:
            await self._channel.put(url)
        except ChannelClosed:
            log.info("Shutting down before chapter %d was broadcast", next_number)
            return None

        try:
            advanced = await self._store.advance(pointer.chapter_number, url)
        except StoreUnavailable as exc:
            log.error("Couldn't update latest chapter to %d: %s", next_number, exc)
            return url
        if not advanced:
            log.warning(
                "Chapter pointer moved past %d before it could be advanced",
                pointer.chapter_number,
            )
        return url
