"""Pydantic models for the persistent records and inbound chat events."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ChapterPointer(BaseModel):
    chapter_number: int = Field(ge=0)
    url: str


class Subscriber(BaseModel):
    chat_id: int


class ChatEvent(BaseModel):
    chat_id: int
    user_id: Optional[int] = None  # None for channel posts / service messages
    text: str = ""
