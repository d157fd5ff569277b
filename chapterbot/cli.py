"""Command line: `chapterbot run` serves the app, `chapterbot seed` sets the pointer."""
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, Sequence

import uvicorn

from chapterbot import config
from chapterbot.errors import ChapterBotError, ConfigError
from chapterbot.logging_config import setup_logging
from chapterbot.models import ChapterPointer
from chapterbot.storage.mongo import MongoChapterStore, create_client, ping

log = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chapterbot",
        description=f"Notify Telegram subscribers when a new {config.SERIES_NAME} chapter is out.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Start the bot and its status API.")
    run.add_argument("--host", default=config.HOST, help=f"Bind address (default: {config.HOST}).")
    run.add_argument("--port", type=int, default=config.PORT, help=f"Bind port (default: {config.PORT}).")

    seed = sub.add_parser("seed", help="Create or overwrite the latest-chapter record.")
    seed.add_argument("--chapter", type=int, required=True, help="Latest released chapter number.")
    seed.add_argument("--url", required=True, help="URL of that chapter.")
    return parser.parse_args(argv)


def validate_args(args: argparse.Namespace) -> None:
    if args.command == "seed" and args.chapter < 0:
        raise SystemExit("Chapter number must be zero or greater.")
    if args.command == "run" and not 0 < args.port < 65536:
        raise SystemExit(f"Invalid port: {args.port}")


async def seed_chapter(pointer: ChapterPointer) -> None:
    if not config.MONGO_URI:
        raise ConfigError("missing required settings: MONGO_URI")
    client = create_client(config.MONGO_URI)
    try:
        await ping(client)
        await MongoChapterStore(client[config.MONGO_DB_NAME]).seed(pointer)
    finally:
        await client.close()
    log.info("Seeded chapter %d (%s)", pointer.chapter_number, pointer.url)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    validate_args(args)

    if args.command == "run":
        uvicorn.run("chapterbot.main:app", host=args.host, port=args.port)
        return

    setup_logging()
    try:
        asyncio.run(seed_chapter(ChapterPointer(chapter_number=args.chapter, url=args.url)))
    except ChapterBotError as exc:
        raise SystemExit(str(exc)) from None


if __name__ == "__main__":
    main()
