"""Store contracts consumed by the poller, broadcaster and dispatcher."""
from __future__ import annotations

from typing import Protocol

from chapterbot.models import ChapterPointer


class ChapterStore(Protocol):
    async def get(self) -> ChapterPointer:
        """Current pointer. Raises StoreUnavailable (ChapterNotSeeded if absent)."""
        ...

    async def advance(self, expected_number: int, new_url: str) -> bool:
        """Set number to expected_number + 1 and url to new_url in one write.

        Returns False when the stored number no longer equals expected_number.
        """
        ...

    async def seed(self, pointer: ChapterPointer) -> None:
        ...


class SubscriberRegistry(Protocol):
    async def add(self, chat_id: int) -> None:
        ...

    async def remove(self, chat_id: int) -> None:
        ...

    async def list(self) -> set[int]:
        ...

    async def count(self) -> int:
        ...
