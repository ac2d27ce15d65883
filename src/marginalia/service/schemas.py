"""Request bodies accepted by the counts & comments service."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class TargetFields(BaseModel):
    book_id: Optional[str] = None
    chapter_id: Optional[str] = None
    line_number: Optional[int] = Field(default=None, ge=1)


class LikeRequest(TargetFields):
    action: Literal["like", "unlike"]


class CommentCreate(TargetFields):
    author_name: str
    body: str
    parent_id: Optional[str] = None


class CommentUpdate(BaseModel):
    body: Optional[str] = None  # author edit
    hidden: Optional[bool] = None  # admin only
    admin_reply: Optional[str] = None  # admin only
