"""HTTP fetch of the page that lists new chapters."""
from __future__ import annotations

import logging

import httpx

from chapterbot.config import FETCH_TIMEOUT_SECONDS
from chapterbot.errors import FetchError

log = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/126.0.0.0 Safari/537.36"
)

DEFAULT_HEADERS = {
    "User-Agent": DEFAULT_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


def create_http_client(
    timeout: float = FETCH_TIMEOUT_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers=DEFAULT_HEADERS,
        timeout=timeout,
        follow_redirects=True,
        transport=transport,
    )


class PageFetcher:
    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self._client = client
        self.url = url

    async def fetch(self) -> str:
        """Body of one GET. Raises FetchError on transport errors or non-200."""
        try:
            response = await self._client.get(self.url)
        except httpx.HTTPError as exc:
            raise FetchError(f"GET {self.url} failed: {exc}") from exc
        if response.status_code != httpx.codes.OK:
            raise FetchError(f"GET {self.url} returned {response.status_code}")
        return response.text
