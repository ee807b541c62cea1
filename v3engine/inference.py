"""
v3 Engine: Inference Accumulator

Walks a normalised event stream once (see patches.normalize_patch_stream)
and keeps:

  - the latest cumulative answer text
  - the conversation title from a ``title`` event
  - token usage and model from the terminal inference event (``finishedAt``)

Answers start with a detected-language marker such as
``<lang primary="en-US"/>``. It is stripped once complete; while it is
still arriving nothing is sent to the incremental sink.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass
from typing import Any

from v3engine.patches import INFERENCE_TYPE

logger = logging.getLogger(__name__)

TITLE_TYPE = "title"

_LANG_TAG_RE = re.compile(r"^\s*<lang\b[^>]*/?>\s*")
_LANG_OPEN = "<lang"


# ---------------------------------------------------------------------------
# Lang marker
# ---------------------------------------------------------------------------


def strip_lang_tag(text: str) -> str:
    """Remove a complete leading lang marker and the whitespace after it."""
    return _LANG_TAG_RE.sub("", text, count=1)


def is_incomplete_lang_tag(text: str) -> bool:
    """
    True while the text could still turn into a lang marker that has not
    been closed yet: ``<lang primary`` or a prefix of ``<lang`` itself.
    """
    head = text.lstrip()
    if not head:
        return False
    if head.startswith(_LANG_OPEN):
        return ">" not in head
    return _LANG_OPEN.startswith(head)


# ---------------------------------------------------------------------------
# Event helpers
# ---------------------------------------------------------------------------


def inference_text(event: dict[str, Any]) -> str:
    """Joined content of the ``text`` entries of an inference event's value."""
    value = event.get("value")
    if not isinstance(value, list):
        return ""
    return "".join(
        entry.get("content") or ""
        for entry in value
        if isinstance(entry, dict) and entry.get("type") == "text" and isinstance(entry.get("content"), str)
    )


def extract_rich_text(value: Any) -> str | None:
    """Plain text from wire rich text or a bare string. None when empty."""
    if isinstance(value, str):
        return value
    if not isinstance(value, list) or not value:
        return None
    parts = [seg[0] for seg in value if isinstance(seg, list) and seg and isinstance(seg[0], str)]
    return "".join(parts)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class TokenUsage:
    input: int
    output: int | None = None
    cached: int | None = None

    def to_dict(self) -> dict[str, int]:
        d = {"input": self.input}
        if self.output is not None:
            d["output"] = self.output
        if self.cached is not None:
            d["cached"] = self.cached
        return d


@dataclass
class ChatResult:
    response_text: str = ""
    title: str | None = None
    model: str | None = None
    token_usage: TokenUsage | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"response_text": self.response_text}
        if self.title is not None:
            d["title"] = self.title
        if self.model is not None:
            d["model"] = self.model
        if self.token_usage is not None:
            d["token_usage"] = self.token_usage.to_dict()
        return d


# ---------------------------------------------------------------------------
# Accumulator
# ---------------------------------------------------------------------------


class InferenceAccumulator:
    """
    Single-pass fold over normalised events.

    feed() returns the newly displayable text for that event ("" if none).
    """

    def __init__(self) -> None:
        self.raw_text = ""
        self.title: str | None = None
        self.model: str | None = None
        self.token_usage: TokenUsage | None = None
        self._emitted = ""

    def feed(self, event: dict[str, Any]) -> str:
        event_type = event.get("type")

        if event_type == TITLE_TYPE:
            if isinstance(event.get("value"), str):
                self.title = event["value"]
            return ""

        if event_type != INFERENCE_TYPE:
            return ""

        self.raw_text = inference_text(event)

        if event.get("finishedAt") is not None:
            self._record_finish(event)

        return self._next_delta()

    def _record_finish(self, event: dict[str, Any]) -> None:
        if isinstance(event.get("model"), str):
            self.model = event["model"]
        input_tokens = event.get("inputTokens")
        if isinstance(input_tokens, int):
            self.token_usage = TokenUsage(
                input=input_tokens,
                output=event.get("outputTokens"),
                cached=event.get("cachedTokensRead"),
            )

    def _next_delta(self) -> str:
        if is_incomplete_lang_tag(self.raw_text):
            return ""
        clean = strip_lang_tag(self.raw_text)
        if not clean.startswith(self._emitted):
            # The answer was rewritten rather than extended. Nothing already
            # shown can be taken back, so only track the new baseline.
            logger.debug("inference text rewritten, resyncing sink")
            self._emitted = clean
            return ""
        delta = clean[len(self._emitted):]
        self._emitted = clean
        return delta

    def result(self) -> ChatResult:
        return ChatResult(
            response_text=strip_lang_tag(self.raw_text),
            title=self.title,
            model=self.model,
            token_usage=self.token_usage,
        )


async def process_inference_stream(
    events: AsyncIterable[dict[str, Any]],
    on_chunk: Callable[[str], None] | None = None,
) -> ChatResult:
    """Consume a normalised event stream and return the conversation result."""
    acc = InferenceAccumulator()
    async for event in events:
        if not isinstance(event, dict):
            continue
        delta = acc.feed(event)
        if delta and on_chunk is not None:
            on_chunk(delta)
    return acc.result()


# ---------------------------------------------------------------------------
# Thread history
# ---------------------------------------------------------------------------


def parse_thread_message(
    message_id: str,
    step_type: str,
    step: dict[str, Any],
    record: dict[str, Any],
) -> dict[str, Any] | None:
    """
    Render one stored thread step as a chat message.

    Only user, assistant and tool steps are shown; config, context, title
    and unknown steps return None.
    """
    created_at = record.get("created_time")

    if step_type == "user":
        return {
            "id": message_id,
            "role": "user",
            "content": extract_rich_text(step.get("value")) or "",
            "created_at": created_at,
        }

    if step_type == INFERENCE_TYPE:
        return {
            "id": message_id,
            "role": "assistant",
            "content": strip_lang_tag(inference_text(step)),
            "created_at": created_at,
        }

    if step_type == "agent-tool-result":
        tool_name = step.get("toolName")
        state = step.get("state")
        if isinstance(state, str) and state.endswith(":error"):
            content = f'Tool "{tool_name}" failed: {step.get("error") or "unknown error"}'
        else:
            content = f'Tool "{tool_name}" completed'
        return {
            "id": message_id,
            "role": "tool",
            "content": content,
            "created_at": created_at,
            "tool_name": tool_name,
            "tool_state": state,
        }

    return None
