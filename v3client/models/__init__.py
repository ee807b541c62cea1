"""
Pydantic models for notion-v3.

All result shapes defined here. No imports from services.
"""

from v3client.models.ai import (
    AiModel,
    InferenceTranscript,
    RunInferenceParams,
    ThreadContent,
    ThreadMessage,
    TranscriptPage,
)
from v3client.models.session import V3Session
from v3client.models.workspace import Backlink, CommentAuthor, CommentCreateResult, CommentItem

__all__ = [
    # Session
    "V3Session",
    # AI
    "AiModel",
    "InferenceTranscript",
    "RunInferenceParams",
    "ThreadContent",
    "ThreadMessage",
    "TranscriptPage",
    # Workspace
    "Backlink",
    "CommentAuthor",
    "CommentCreateResult",
    "CommentItem",
]
