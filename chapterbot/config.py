"""Central configuration: environment settings, message templates, store names."""
from __future__ import annotations

import os
import re
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

ROOT = Path(__file__).parent.parent

load_dotenv(find_dotenv(usecwd=True))


def _int_env(key: str, default: int) -> int:
    raw = os.environ.get(key, "").strip()
    return int(raw) if raw else default


def slugify(name: str) -> str:
    """'One Piece' → 'one-piece'"""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


# ── Required ──────────────────────────────────────────────────────────────────
TELEGRAM_HTTP_API_TOKEN = os.environ.get("TELEGRAM_HTTP_API_TOKEN", "")
SCRAPE_URL = os.environ.get("SCRAPE_URL", "")
MONGO_URI = os.environ.get("MONGO_URI", "")

REQUIRED_SETTINGS = ("TELEGRAM_HTTP_API_TOKEN", "SCRAPE_URL", "MONGO_URI")

# ── Series ────────────────────────────────────────────────────────────────────
SERIES_NAME = os.environ.get("SERIES_NAME", "One Piece")
SERIES_SLUG = os.environ.get("SERIES_SLUG") or slugify(SERIES_NAME)
# Detected fragments are appended to this; defaults to the scraped page itself
CHAPTER_BASE_URL = os.environ.get("CHAPTER_BASE_URL") or SCRAPE_URL

START_MESSAGE = (
    f"Started watching for {SERIES_NAME} updates for you. "
    "You will be notified when a new chapter is out."
)
LATEST_CHAPTER_MESSAGE = "Meanwhile you can read the latest chapter of {series} at {url}"
CHAPTER_OUT_MESSAGE = "{series} {chapter} is out at {url}"

# ── Polling ───────────────────────────────────────────────────────────────────
POLL_INTERVAL_SECONDS = _int_env("POLL_INTERVAL_SECONDS", 2 * 60 * 60)
FETCH_TIMEOUT_SECONDS = _int_env("FETCH_TIMEOUT_SECONDS", 30)

# ── Telegram ──────────────────────────────────────────────────────────────────
TELEGRAM_POLL_TIMEOUT = _int_env("TELEGRAM_POLL_TIMEOUT", 60)
TELEGRAM_ERROR_PAUSE_SECONDS = 5
BROADCAST_CONCURRENCY = _int_env("BROADCAST_CONCURRENCY", 10)

# ── MongoDB ───────────────────────────────────────────────────────────────────
MONGO_DB_NAME = os.environ.get("MONGO_DB_NAME", "op-bot-data")
USERS_COLLECTION = "users"
CHAPTERS_COLLECTION = "chapters"
MONGO_TIMEOUT_MS = 30_000
MONGO_MAX_POOL_SIZE = 100
MONGO_MIN_POOL_SIZE = 1

# ── HTTP status API ───────────────────────────────────────────────────────────
HOST = os.environ.get("HOST", "127.0.0.1")
PORT = _int_env("PORT", 8000)
ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN", "")

# ── Logging ───────────────────────────────────────────────────────────────────
DEBUG = os.environ.get("DEBUG") == "true"
LOG_LEVEL = (os.environ.get("LOG_LEVEL") or ("DEBUG" if DEBUG else "INFO")).upper()
LOG_DIR = Path(os.environ.get("LOG_DIR") or ROOT / "logs")
LOG_MAX_MB = _int_env("LOG_MAX_MB", 10)
LOG_BACKUP_COUNT = _int_env("LOG_BACKUP_COUNT", 5)


def missing_settings() -> list[str]:
    """Names of required settings that are unset or empty."""
    return [key for key in REQUIRED_SETTINGS if not globals()[key]]
