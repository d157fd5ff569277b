"""Chapter detection cycle."""

import asyncio

import httpx
import pytest

from chapterbot.broadcast.channel import BroadcastChannel
from chapterbot.errors import StoreUnavailable
from chapterbot.scheduler.poller import Poller, detection_pattern, find_chapter, join_url

from conftest import BASE_URL, NEXT_FRAGMENT, NEXT_URL, START_POINTER, FailingStore, page


def make_poller(store, fetcher, channel=None, stop=None):
    return Poller(
        store,
        fetcher,
        channel or BroadcastChannel(),
        stop or asyncio.Event(),
        base_url=BASE_URL,
        series_slug="one-piece",
    )


# ── Pattern helpers ───────────────────────────────────────────────────────────

def test_pattern_matches_next_chapter_path():
    body = page("/chapters/1/one-piece-chapter-1098", NEXT_FRAGMENT)
    assert find_chapter(body, "one-piece", 1099) == NEXT_FRAGMENT


def test_pattern_does_not_match_longer_number():
    body = page("/chapters/9/one-piece-chapter-10990")
    assert find_chapter(body, "one-piece", 1099) is None


def test_pattern_needs_path_shape():
    assert detection_pattern("one-piece", 1099).search("one-piece-chapter-1099") is None
    assert detection_pattern("one-piece", 1099).search("/chapters/x/one-piece-chapter-1099") is None


def test_join_url_strips_trailing_slash():
    assert join_url("https://example.com/", NEXT_FRAGMENT) == NEXT_URL
    assert join_url("https://example.com", NEXT_FRAGMENT) == NEXT_URL


# ── Cycle ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_next_chapter_advances_and_notifies_once(store, make_fetcher):
    fetcher, transport = make_fetcher(page("/chapters/1/one-piece-chapter-1098", NEXT_FRAGMENT))
    channel = BroadcastChannel()
    poller = make_poller(store, fetcher, channel)

    assert await poller.poll_once() == NEXT_URL

    pointer = await store.get()
    assert pointer.chapter_number == 1099
    assert pointer.url == NEXT_URL
    assert channel.pending() == 1
    assert await channel.get() == NEXT_URL
    assert len(transport.requests) == 1

    # The same page on the next cycle is looking for 1100 now
    assert await poller.poll_once() is None
    assert (await store.get()).chapter_number == 1099
    assert channel.pending() == 0


@pytest.mark.asyncio
async def test_no_match_leaves_pointer_and_channel_alone(store, make_fetcher):
    fetcher, _ = make_fetcher(page("/chapters/1/one-piece-chapter-1098"))
    channel = BroadcastChannel()

    assert await make_poller(store, fetcher, channel).poll_once() is None
    assert await store.get() == START_POINTER
    assert channel.pending() == 0


@pytest.mark.asyncio
async def test_non_200_is_a_failed_fetch(store, make_fetcher):
    fetcher, _ = make_fetcher(page(NEXT_FRAGMENT), status_code=503)
    channel = BroadcastChannel()

    assert await make_poller(store, fetcher, channel).poll_once() is None
    assert await store.get() == START_POINTER
    assert channel.pending() == 0


@pytest.mark.asyncio
async def test_transport_error_is_not_fatal(store, make_fetcher):
    fetcher, _ = make_fetcher(exc=httpx.ConnectError("connection refused"))
    assert await make_poller(store, fetcher).poll_once() is None
    assert await store.get() == START_POINTER


@pytest.mark.asyncio
async def test_store_read_failure_skips_fetch(make_fetcher):
    store = FailingStore(START_POINTER, fail={"get": StoreUnavailable("down")})
    fetcher, transport = make_fetcher(page(NEXT_FRAGMENT))

    assert await make_poller(store, fetcher).poll_once() is None
    assert transport.requests == []


@pytest.mark.asyncio
async def test_store_write_failure_still_returns_notified_url(make_fetcher):
    store = FailingStore(START_POINTER, fail={"advance": StoreUnavailable("down")})
    fetcher, _ = make_fetcher(page(NEXT_FRAGMENT))
    channel = BroadcastChannel()

    assert await make_poller(store, fetcher, channel).poll_once() == NEXT_URL
    assert channel.pending() == 1
    assert (await store.get()).chapter_number == 1098


@pytest.mark.asyncio
async def test_stop_signal_prevents_fetch(store, make_fetcher):
    fetcher, transport = make_fetcher(page(NEXT_FRAGMENT))
    stop = asyncio.Event()
    stop.set()

    assert await make_poller(store, fetcher, stop=stop).poll_once() is None
    assert transport.requests == []


@pytest.mark.asyncio
async def test_closed_channel_does_not_advance(store, make_fetcher):
    fetcher, _ = make_fetcher(page(NEXT_FRAGMENT))
    channel = BroadcastChannel()
    channel.close()

    assert await make_poller(store, fetcher, channel).poll_once() is None
    assert await store.get() == START_POINTER


@pytest.mark.asyncio
async def test_concurrent_cycles_do_not_double_notify(store, make_fetcher):
    fetcher, _ = make_fetcher(page(NEXT_FRAGMENT))
    channel = BroadcastChannel()
    poller = make_poller(store, fetcher, channel)

    results = await asyncio.gather(poller.poll_once(), poller.poll_once())
    assert results.count(NEXT_URL) == 1
    assert channel.pending() == 1
    assert (await store.get()).chapter_number == 1099
