"""Exception hierarchy shared by every component."""
from __future__ import annotations


class ChapterBotError(Exception):
    """Base class for all chapterbot errors."""


class ConfigError(ChapterBotError):
    """Required configuration is missing or invalid. Fatal at start-up."""


class StoreUnavailable(ChapterBotError):
    """The document store could not complete a read or write."""


class ChapterNotSeeded(StoreUnavailable):
    """The chapter pointer record does not exist yet."""


class DeliveryError(ChapterBotError):
    """An outbound chat message could not be sent."""

    def __init__(self, chat_id: int, reason: str) -> None:
        super().__init__(f"delivery to {chat_id} failed: {reason}")
        self.chat_id = chat_id
        self.reason = reason


class ReceiveError(ChapterBotError):
    """Inbound chat updates could not be fetched."""


class FetchError(ChapterBotError):
    """The scrape target could not be fetched or answered with a non-200 status."""


class ChannelClosed(ChapterBotError):
    """The broadcast channel was closed while a put/get was pending."""
