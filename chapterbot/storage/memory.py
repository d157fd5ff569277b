"""In-process store guarded by a single asyncio.Lock; the tests run the bot against it."""
from __future__ import annotations

import asyncio
from typing import Optional

from chapterbot.errors import ChapterNotSeeded
from chapterbot.models import ChapterPointer


class MemoryStore:
    """Implements both ChapterStore and SubscriberRegistry.

    Every write happens under the lock and replaces whole values, so readers
    only ever see a complete pointer or a complete snapshot.
    """

    def __init__(self, pointer: Optional[ChapterPointer] = None) -> None:
        self._lock = asyncio.Lock()
        self._pointer = pointer
        self._chat_ids: set[int] = set()

    # ── Chapter pointer ───────────────────────────────────────────────────────

    async def get(self) -> ChapterPointer:
        async with self._lock:
            if self._pointer is None:
                raise ChapterNotSeeded("no latest chapter found")
            return self._pointer

    async def advance(self, expected_number: int, new_url: str) -> bool:
        async with self._lock:
            if self._pointer is None or self._pointer.chapter_number != expected_number:
                return False
            self._pointer = ChapterPointer(chapter_number=expected_number + 1, url=new_url)
            return True

    async def seed(self, pointer: ChapterPointer) -> None:
        async with self._lock:
            self._pointer = pointer

    # ── Subscribers ───────────────────────────────────────────────────────────

    async def add(self, chat_id: int) -> None:
        async with self._lock:
            self._chat_ids.add(chat_id)

    async def remove(self, chat_id: int) -> None:
        async with self._lock:
            self._chat_ids.discard(chat_id)

    async def list(self) -> set[int]:
        async with self._lock:
            return set(self._chat_ids)

    async def count(self) -> int:
        async with self._lock:
            return len(self._chat_ids)
