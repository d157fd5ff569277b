"""
Single-slot handoff between the poller and the broadcaster.

put() waits while the previous URL has not been taken yet; get() waits for
the next one. close() wakes both sides: pending and later calls raise
ChannelClosed.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from chapterbot.errors import ChannelClosed

T = TypeVar("T")


async def until_set(aw: Awaitable[T], event: asyncio.Event) -> tuple[bool, T | None]:
    """Await `aw` unless `event` fires first.

    Returns (True, result) if `aw` finished, (False, None) if the event won.
    The losing side is cancelled.
    """
    task = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
    if task.done() and not task.cancelled():
        return True, task.result()
    return False, None


class BroadcastChannel:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=1)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    async def put(self, url: str) -> None:
        if self.closed:
            raise ChannelClosed("channel closed")
        done, _ = await until_set(self._queue.put(url), self._closed)
        if not done:
            raise ChannelClosed("channel closed before the notification was taken")

    async def get(self) -> str:
        if self.closed:
            raise ChannelClosed("channel closed")
        done, url = await until_set(self._queue.get(), self._closed)
        if not done:
            raise ChannelClosed("channel closed")
        return url

    def pending(self) -> int:
        return self._queue.qsize()
