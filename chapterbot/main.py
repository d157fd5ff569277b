"""
FastAPI application entry point. The lifespan runs the bot.

Routes:
  GET  /api/health
  GET  /api/chapter
  GET  /api/subscribers
  POST /api/admin/poll      (X-Admin-Token header)
"""
from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status

from chapterbot import config
from chapterbot.errors import StoreUnavailable
from chapterbot.logging_config import setup_logging
from chapterbot.models import ChapterPointer
from chapterbot.service import BotService, open_service

log = logging.getLogger("uvicorn.error")

# ── Lifespan ──────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    async with open_service() as service:
        app.state.service = service
        yield
    app.state.service = None


app = FastAPI(title="chapterbot", lifespan=lifespan)


def get_service(request: Request) -> BotService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Bot not running")
    return service


def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    if not config.ADMIN_TOKEN or not x_admin_token:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Admin only")
    if not secrets.compare_digest(x_admin_token, config.ADMIN_TOKEN):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Admin only")


# ── Status ────────────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health(request: Request):
    service = getattr(request.app.state, "service", None)
    return {"ok": True, "running": bool(service and service.running)}


@app.get("/api/chapter", response_model=ChapterPointer)
async def get_chapter(service: BotService = Depends(get_service)):
    try:
        return await service.chapters.get()
    except StoreUnavailable as exc:
        log.error("Couldn't get latest chapter: %s", exc)
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Store unavailable")


@app.get("/api/subscribers")
async def get_subscribers(service: BotService = Depends(get_service)):
    try:
        return {"count": await service.registry.count()}
    except StoreUnavailable as exc:
        log.error("Couldn't count subscribers: %s", exc)
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Store unavailable")


# ── Admin ─────────────────────────────────────────────────────────────────────

@app.post("/api/admin/poll", dependencies=[Depends(require_admin)])
async def admin_poll(service: BotService = Depends(get_service)):
    url = await service.trigger_poll()
    return {"polled": True, "new_chapter_url": url}
