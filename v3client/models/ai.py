"""Pydantic models for the AI-conversation endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class AiModel(BaseModel):
    """One entry of getAvailableModels."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", protected_namespaces=())

    model: str  # internal codename, e.g. "oatmeal-cookie"
    model_message: str = Field(default="", alias="modelMessage")  # display name
    model_family: str = Field(default="", alias="modelFamily")
    display_group: str = Field(default="", alias="displayGroup")
    is_disabled: bool = Field(default=False, alias="isDisabled")


class InferenceTranscript(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    created_at: int | None = None
    updated_at: int | None = None
    created_by_display_name: str = ""
    type: str = ""


class TranscriptPage(BaseModel):
    """Result of listing a user's conversations."""

    transcripts: list[InferenceTranscript] = Field(default_factory=list)
    unread_thread_ids: list[str] = Field(default_factory=list)
    has_more: bool = False


class ThreadMessage(BaseModel):
    id: str
    role: Literal["user", "assistant", "tool"]
    content: str
    created_at: int | None = None
    tool_name: str | None = None
    tool_state: str | None = None


class ThreadContent(BaseModel):
    thread_id: str
    title: str | None = None
    messages: list[ThreadMessage] = Field(default_factory=list)


class RunInferenceParams(BaseModel):
    """Everything needed to start or continue one conversation turn."""

    message: str
    user_id: str
    space_id: str
    user_name: str = ""
    user_email: str = ""
    space_name: str = ""
    model: str | None = None
    thread_id: str | None = None
    page_id: str | None = None  # page set as conversation context
    no_search: bool = False
    timezone: str = "UTC"
    extra_config: dict[str, Any] = Field(default_factory=dict)
