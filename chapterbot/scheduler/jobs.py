"""APScheduler wiring for the chapter poll."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from chapterbot.config import POLL_INTERVAL_SECONDS
from chapterbot.scheduler.poller import Poller

log = logging.getLogger(__name__)

POLL_JOB_ID = "poll_chapter"


def setup_scheduler(poller: Poller, interval_seconds: int = POLL_INTERVAL_SECONDS) -> AsyncIOScheduler:
    """Create and start the scheduler; the first poll runs immediately."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        poller.poll_once,
        "interval",
        seconds=interval_seconds,
        id=POLL_JOB_ID,
        next_run_time=datetime.now(timezone.utc),
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    log.info("Polling for new chapters every %ds", interval_seconds)
    return scheduler
