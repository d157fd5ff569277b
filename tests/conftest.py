"""Test fixtures: in-memory stores, a recording chat transport, canned HTTP pages.

Nothing here talks to Telegram, MongoDB or the network: the scrape target is
an httpx.MockTransport and the chat side is a pair of fakes that satisfy the
MessageSender / EventSource contracts.
"""
from __future__ import annotations

import asyncio

import httpx
import pytest
import pytest_asyncio

from chapterbot.errors import DeliveryError, ReceiveError
from chapterbot.models import ChapterPointer, ChatEvent
from chapterbot.scraper import PageFetcher, create_http_client
from chapterbot.storage.memory import MemoryStore

BASE_URL = "https://example.com"
SCRAPE_URL = "https://example.com/"
START_POINTER = ChapterPointer(
    chapter_number=1098,
    url="https://example.com/chapters/1/one-piece-chapter-1098",
)
NEXT_FRAGMENT = "/chapters/2/one-piece-chapter-1099"
NEXT_URL = BASE_URL + NEXT_FRAGMENT


def page(*fragments: str) -> str:
    links = "\n".join(f'<a href="{f}">{f.rsplit("/", 1)[-1]}</a>' for f in fragments)
    return f"<html><body><ul>{links}</ul></body></html>"


class FakeSender:
    """Records every send; chats in `fail_for` raise DeliveryError."""

    def __init__(self, fail_for: set[int] | None = None) -> None:
        self.sent: list[tuple[int, str, bool]] = []
        self.fail_for = set(fail_for or ())
        self.attempts: list[int] = []

    async def send(self, chat_id: int, text: str, html: bool = False) -> None:
        self.attempts.append(chat_id)
        if chat_id in self.fail_for:
            raise DeliveryError(chat_id, "Forbidden: bot was blocked by the user")
        self.sent.append((chat_id, text, html))

    def texts_for(self, chat_id: int) -> list[str]:
        return [text for cid, text, _ in self.sent if cid == chat_id]


class FakeSource:
    """Hands out queued batches; a queued exception is raised from fetch()."""

    def __init__(self) -> None:
        self._batches: asyncio.Queue = asyncio.Queue()
        self.fetches = 0

    def push(self, *events: ChatEvent) -> None:
        self._batches.put_nowait(list(events))

    def fail(self, message: str = "Timed out", exc: Exception | None = None) -> None:
        self._batches.put_nowait(exc if exc is not None else ReceiveError(message))

    async def fetch(self) -> list[ChatEvent]:
        self.fetches += 1
        batch = await self._batches.get()
        if isinstance(batch, Exception):
            raise batch
        return batch


class FailingStore(MemoryStore):
    """MemoryStore whose selected operations raise the given error."""

    def __init__(self, pointer=None, fail: dict[str, Exception] | None = None) -> None:
        super().__init__(pointer)
        self.fail = fail or {}

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail:
            raise self.fail[op]

    async def get(self):
        self._maybe_fail("get")
        return await super().get()

    async def advance(self, expected_number, new_url):
        self._maybe_fail("advance")
        return await super().advance(expected_number, new_url)

    async def add(self, chat_id):
        self._maybe_fail("add")
        return await super().add(chat_id)

    async def remove(self, chat_id):
        self._maybe_fail("remove")
        return await super().remove(chat_id)

    async def list(self):
        self._maybe_fail("list")
        return await super().list()


def mock_transport(body: str = "", status_code: int = 200, exc: Exception | None = None):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if exc is not None:
            raise exc
        return httpx.Response(status_code, text=body)

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


@pytest.fixture()
def store():
    return MemoryStore(START_POINTER)


@pytest.fixture()
def sender():
    return FakeSender()


@pytest.fixture()
def source():
    return FakeSource()


@pytest_asyncio.fixture()
async def make_fetcher():
    """Factory: make_fetcher(body=..., status_code=..., exc=...) → (PageFetcher, transport)."""
    clients: list[httpx.AsyncClient] = []

    def _make(body: str = "", status_code: int = 200, exc: Exception | None = None):
        transport = mock_transport(body, status_code, exc)
        client = create_http_client(transport=transport)
        clients.append(client)
        return PageFetcher(client, SCRAPE_URL), transport

    yield _make

    for client in clients:
        await client.aclose()


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
