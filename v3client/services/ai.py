"""
AI conversation service.

Builds runInferenceTranscript requests and turns the streamed reply into a
ChatResult. The stream is decoded by parse_ndjson, folded into cumulative
inference events by normalize_patch_stream and summarised by
process_inference_stream.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from typing import Any

from v3client.config import Config
from v3client.errors import ModelNotFound
from v3client.models.ai import (
    AiModel,
    InferenceTranscript,
    RunInferenceParams,
    ThreadContent,
    ThreadMessage,
    TranscriptPage,
)
from v3client.services.http_client import V3HttpClient
from v3client.services.ndjson import parse_ndjson
from v3engine.inference import ChatResult, extract_rich_text, parse_thread_message, process_inference_stream
from v3engine.patches import normalize_patch_stream

logger = logging.getLogger(__name__)

THREAD_TABLE = "thread"
THREAD_MESSAGE_TABLE = "thread_message"


def resolve_model(models: list[AiModel], requested: str | None, config_default: str | None = None) -> str | None:
    """
    Map a codename or display name to a model codename.

    Tries, in order: exact codename, case-insensitive display name, partial
    display name. Returns None when neither a request nor a default is given.

    Raises:
        ModelNotFound: if nothing matches
    """
    wanted = requested or config_default
    if not wanted:
        return None

    for m in models:
        if m.model == wanted:
            return m.model

    lower = wanted.lower()
    for m in models:
        if m.model_message.lower() == lower:
            return m.model

    for m in models:
        if lower in m.model_message.lower():
            return m.model

    raise ModelNotFound(wanted)


def build_transcript_request(params: RunInferenceParams, *, now: datetime | None = None) -> dict[str, Any]:
    """Request body for one conversation turn. A missing thread id starts a new thread."""
    is_new_thread = not params.thread_id
    thread_id = params.thread_id or str(uuid.uuid4())
    timestamp = (now or datetime.now(UTC)).isoformat()

    config_value: dict[str, Any] = {
        "type": "workflow",
        "availableConnectors": [],
        "searchScopes": [] if params.no_search else [{"type": "everything"}],
        "useWebSearch": not params.no_search,
        "writerMode": False,
        "enableAgentDiffs": False,
        "useServerUndo": False,
    }
    if params.model:
        config_value["model"] = params.model
    config_value.update(params.extra_config)

    context_value: dict[str, Any] = {
        "timezone": params.timezone,
        "userName": params.user_name,
        "userId": params.user_id,
        "userEmail": params.user_email,
        "spaceName": params.space_name,
        "spaceId": params.space_id,
        "currentDatetime": timestamp,
        "surface": "workflows",
        "visibleCollectionViewIds": {},
    }
    if params.page_id:
        context_value["blockId"] = params.page_id

    return {
        "traceId": str(uuid.uuid4()),
        "spaceId": params.space_id,
        "transcript": [
            {"id": str(uuid.uuid4()), "type": "config", "value": config_value},
            {"id": str(uuid.uuid4()), "neverCompress": True, "type": "context", "value": context_value},
            {
                "id": str(uuid.uuid4()),
                "type": "user",
                "value": [[params.message]],
                "userId": params.user_id,
                "createdAt": timestamp,
            },
        ],
        "threadId": thread_id,
        "threadParentPointer": {"table": "space", "id": params.space_id, "spaceId": params.space_id},
        "createThread": is_new_thread,
        "generateTitle": is_new_thread,
        "saveAllThreadOperations": True,
        "threadType": "workflow",
        "isPartialTranscript": False,
        "asPatchResponse": False,
        "debugOverrides": {
            "emitAgentSearchExtractedResults": True,
            "cachedInferences": {},
            "annotationInferences": {},
            "emitInferences": False,
        },
    }


class AiService:
    """AI conversations over one v3 session."""

    def __init__(self, http: V3HttpClient, config: Config | None = None) -> None:
        self.http = http
        self.config = config

    # -- models ---------------------------------------------------------------

    async def list_models(self) -> list[AiModel]:
        return [AiModel.model_validate(m) for m in await self.http.get_available_models()]

    async def pick_model(self, requested: str | None = None) -> str | None:
        """Resolve ``requested`` (or the configured default) against the live model list."""
        config_default = self.config.default_model if self.config else None
        if not requested and not config_default:
            return None
        return resolve_model(await self.list_models(), requested, config_default)

    # -- conversations --------------------------------------------------------

    def run_inference(
        self,
        params: RunInferenceParams,
        on_raw_line: Callable[[str], None] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Start one turn and return its normalised event stream.

        Both wire shapes come out as cumulative ``agent-inference`` events.
        """
        body = build_transcript_request(params)
        logger.info(
            "Running inference on thread %s (new=%s, model=%s)",
            body["threadId"], body["createThread"], params.model or "default",
        )
        raw = self.http.run_inference_transcript(body)
        return normalize_patch_stream(parse_ndjson(raw, on_raw_line=on_raw_line))

    async def chat(
        self,
        params: RunInferenceParams,
        on_chunk: Callable[[str], None] | None = None,
    ) -> ChatResult:
        """Run one turn to completion. ``on_chunk`` receives display text as it arrives."""
        result = await process_inference_stream(self.run_inference(params), on_chunk)
        if result.token_usage is not None:
            logger.info(
                "Inference finished: model=%s input=%d output=%s",
                result.model, result.token_usage.input, result.token_usage.output,
            )
        return result

    async def list_transcripts(self, limit: int | None = None) -> TranscriptPage:
        data = await self.http.get_inference_transcripts_for_user(limit)
        return TranscriptPage(
            transcripts=[InferenceTranscript.model_validate(t) for t in data.get("transcripts") or []],
            unread_thread_ids=data.get("unreadThreadIds") or [],
            has_more=bool(data.get("hasMore")),
        )

    async def mark_transcript_seen(self, thread_id: str) -> bool:
        data = await self.http.mark_inference_transcript_seen(thread_id)
        return bool(data.get("ok", True)) if isinstance(data, dict) else True

    async def get_thread(self, thread_id: str) -> ThreadContent:
        """Stored messages of a thread, oldest first."""
        records = await self.http.sync_record_values([(THREAD_TABLE, thread_id)])
        thread = records.get(THREAD_TABLE, thread_id) or {}
        message_ids = thread.get("messages") or []

        title = (thread.get("data") or {}).get("title")
        if not isinstance(title, str):
            title = extract_rich_text(title)

        if message_ids:
            records = records.merge(
                await self.http.sync_record_values([(THREAD_MESSAGE_TABLE, mid) for mid in message_ids])
            )

        messages = []
        for mid in message_ids:
            record = records.get(THREAD_MESSAGE_TABLE, mid)
            if record is None:
                continue
            step = record.get("step") or {}
            parsed = parse_thread_message(mid, step.get("type", ""), step, record)
            if parsed is not None:
                messages.append(ThreadMessage.model_validate(parsed))

        return ThreadContent(thread_id=thread_id, title=title, messages=messages)
