"""
Telegram adapter for outbound sends and inbound long polling.

TelegramSender wraps Bot.send_message and turns TelegramError into
DeliveryError. TelegramUpdates pulls batches of updates with getUpdates,
tracks the offset, and converts each text message into a ChatEvent.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from telegram import Bot, Update
from telegram.constants import ParseMode
from telegram.error import InvalidToken, TelegramError

from chapterbot.config import TELEGRAM_POLL_TIMEOUT
from chapterbot.errors import ConfigError, DeliveryError, ReceiveError
from chapterbot.models import ChatEvent

log = logging.getLogger(__name__)


class MessageSender(Protocol):
    async def send(self, chat_id: int, text: str, html: bool = False) -> None:
        """Deliver one message. Raises DeliveryError."""
        ...


class EventSource(Protocol):
    async def fetch(self) -> list[ChatEvent]:
        """Next batch of inbound events, oldest first. Raises ReceiveError."""
        ...


async def open_bot(token: str) -> Bot:
    """Create and initialise a Bot; an unusable token is a start-up failure."""
    bot = Bot(token=token)
    try:
        await bot.initialize()
    except InvalidToken as exc:
        raise ConfigError(f"failed to create telegram bot: {exc}") from exc
    except TelegramError as exc:
        raise ConfigError(f"failed to reach telegram: {exc}") from exc
    log.info("Authorized on account @%s", bot.username)
    return bot


def event_from_update(update: Update) -> Optional[ChatEvent]:
    """ChatEvent for a message update; None for anything else."""
    message = update.message
    if message is None:
        log.debug("Unsupported update type: %s", update.update_id)
        return None
    user = message.from_user
    return ChatEvent(
        chat_id=message.chat.id,
        user_id=user.id if user is not None else None,
        text=message.text or "",
    )


class TelegramSender:
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send(self, chat_id: int, text: str, html: bool = False) -> None:
        try:
            await self._bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML if html else None,
            )
        except TelegramError as exc:
            raise DeliveryError(chat_id, str(exc)) from exc


class TelegramUpdates:
    def __init__(self, bot: Bot, timeout: int = TELEGRAM_POLL_TIMEOUT) -> None:
        self._bot = bot
        self._timeout = timeout
        self._last_update_id = 0

    async def fetch(self) -> list[ChatEvent]:
        try:
            updates = await self._bot.get_updates(
                offset=self._last_update_id + 1,
                timeout=self._timeout,
                allowed_updates=["message"],
            )
        except TelegramError as exc:
            raise ReceiveError(f"telegram polling error: {exc}") from exc

        events = []
        for update in updates:
            # Acknowledge even the updates we skip
            self._last_update_id = max(self._last_update_id, update.update_id)
            event = event_from_update(update)
            if event is not None:
                events.append(event)
        return events
