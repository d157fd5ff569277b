"""
Process logging setup.

- console: LOG_LEVEL (INFO by default, DEBUG when DEBUG=true)
- file:    LOG_DIR/app.log, rotating, INFO and above
"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from chapterbot.config import DEBUG, LOG_BACKUP_COUNT, LOG_DIR, LOG_LEVEL, LOG_MAX_MB

_NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler", "telegram")


def _mk_rotating_handler(path: Path, level: int, fmt: logging.Formatter) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=LOG_MAX_MB * 1024 * 1024,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(fmt)
    return handler


def setup_logging(log_dir: Path = LOG_DIR) -> Path:
    """Reset the root logger's handlers and return the log directory."""
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    console_level = getattr(logging, LOG_LEVEL, logging.INFO)
    ch = logging.StreamHandler()
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    root.addHandler(_mk_rotating_handler(log_dir / "app.log", logging.INFO, fmt))

    noisy_level = logging.DEBUG if DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    return log_dir
