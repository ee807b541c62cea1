"""Pydantic models for comments and backlinks."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class CommentAuthor(BaseModel):
    id: str
    name: str | None = None


class CommentItem(BaseModel):
    id: str
    discussion_id: str
    body: str
    author: CommentAuthor
    created_time: str | None = None
    kind: Literal["page", "inline"] = "page"
    anchor_text: str | None = None  # inline only: the decorated span
    block_id: str | None = None  # inline only: block holding the anchor
    resolved: bool = False


class CommentCreateResult(BaseModel):
    id: str
    discussion_id: str
    body: str
    created_time: str | None = None
    anchor_text: str | None = None


class Backlink(BaseModel):
    block_id: str
    page_id: str
    page_title: str | None = None
