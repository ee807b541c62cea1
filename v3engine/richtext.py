"""
v3 Engine: Rich Text

Pure functions over segmented rich text:

  to_plain_text               RichText -> str
  inject_decoration           add a decoration over a character range
  inject_anchor_by_text       add a decoration over the first match of a string
  extract_text_by_decoration  collect the text carrying a given decoration

plus the wire codec (decode_rich_text / encode_rich_text).

Every function returns a new value. Inputs are never modified.
"""

from __future__ import annotations

import logging
from typing import Any

from v3engine.types import (
    COMMENT_ANCHOR_TAG,
    DATE_TAG,
    PAGE_MENTION_TAG,
    STYLE_TAGS,
    USER_MENTION_TAG,
    CommentAnchor,
    DateRange,
    Decoration,
    EmptyTarget,
    InvalidRange,
    PageMention,
    RichText,
    Segment,
    StyleMark,
    TextNotFound,
    UnknownDecoration,
    UserMention,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wire codec
# ---------------------------------------------------------------------------


def decode_decoration(raw: list[Any]) -> Decoration:
    """
    Decode one wire decoration ``[tag, *payload]``.

    Raises ValueError if ``raw`` is not a non-empty list with a string tag.
    Known tags with an unexpected payload shape fall back to
    UnknownDecoration rather than failing.
    """
    if not isinstance(raw, (list, tuple)) or not raw or not isinstance(raw[0], str):
        raise ValueError(f"malformed decoration: {raw!r}")

    tag, payload = raw[0], tuple(raw[1:])

    if tag in STYLE_TAGS and not payload:
        return StyleMark(tag)
    if tag == DATE_TAG and len(payload) == 1 and isinstance(payload[0], dict):
        d = payload[0]
        return DateRange(start=d.get("start_date"), end=d.get("end_date"), raw=d)
    if tag == USER_MENTION_TAG and len(payload) == 1 and isinstance(payload[0], str):
        return UserMention(payload[0])
    if tag == PAGE_MENTION_TAG and len(payload) == 1 and isinstance(payload[0], str):
        return PageMention(payload[0])
    if tag == COMMENT_ANCHOR_TAG and len(payload) == 1 and isinstance(payload[0], str):
        return CommentAnchor(payload[0])

    return UnknownDecoration(tag, payload)


def encode_decoration(decoration: Decoration) -> list[Any]:
    if isinstance(decoration, StyleMark):
        return [decoration.tag]
    if isinstance(decoration, DateRange):
        if decoration.raw is not None:
            return [DATE_TAG, decoration.raw]
        payload: dict[str, Any] = {"type": "date", "start_date": decoration.start}
        if decoration.end is not None:
            payload["type"] = "daterange"
            payload["end_date"] = decoration.end
        return [DATE_TAG, payload]
    if isinstance(decoration, UserMention):
        return [USER_MENTION_TAG, decoration.user_id]
    if isinstance(decoration, PageMention):
        return [PAGE_MENTION_TAG, decoration.page_id]
    if isinstance(decoration, CommentAnchor):
        return [COMMENT_ANCHOR_TAG, decoration.discussion_id]
    return [decoration.tag, *decoration.payload]


def decode_rich_text(raw: list[Any] | None) -> RichText:
    """
    Decode wire rich text into Segments.

    Raises ValueError on malformed input. Use coerce_rich_text when a
    default is preferable to an error.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"rich text must be a list, got {type(raw).__name__}")

    segments: RichText = []
    for item in raw:
        if not isinstance(item, (list, tuple)) or not item or not isinstance(item[0], str):
            raise ValueError(f"malformed segment: {item!r}")
        if len(item) == 1:
            segments.append(Segment(item[0]))
            continue
        decorations = item[1]
        if not isinstance(decorations, (list, tuple)):
            raise ValueError(f"malformed decoration list: {decorations!r}")
        segments.append(Segment(item[0], tuple(decode_decoration(d) for d in decorations)))
    return segments


def encode_rich_text(rt: RichText) -> list[Any]:
    out: list[Any] = []
    for seg in rt:
        if seg.decorations is None:
            out.append([seg.text])
        else:
            out.append([seg.text, [encode_decoration(d) for d in seg.decorations]])
    return out


def coerce_rich_text(value: Any) -> RichText:
    """
    Best-effort conversion to RichText. Never raises.

    Accepts already-decoded segments, wire rich text, a bare string, or
    None. Anything malformed becomes an empty rich text.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return rich_text_from_plain(value)
    if isinstance(value, list) and all(isinstance(s, Segment) for s in value):
        return list(value)
    try:
        return decode_rich_text(value)
    except ValueError:
        logger.debug("coerce_rich_text: malformed rich text %r", value)
        return []


def rich_text_from_plain(text: str) -> RichText:
    return [Segment(text)] if text else []


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------


def to_plain_text(rt: RichText | None) -> str:
    if not rt:
        return ""
    return "".join(seg.text for seg in rt)


def inject_decoration(rt: RichText, start: int, end: int, decoration: Decoration) -> RichText:
    """
    Return a copy of ``rt`` with ``decoration`` appended to every character
    in ``[start, end)``.

    Overlapping segments are split into before / overlap / after parts;
    zero-length parts are dropped. Segments outside the range are carried
    over unchanged, so the plain text never changes.
    """
    if start < 0 or end <= start:
        raise InvalidRange(start, end)

    result: RichText = []
    offset = 0
    for seg in rt:
        seg_start = offset
        seg_end = offset + len(seg.text)
        offset = seg_end

        lo = max(start, seg_start)
        hi = min(end, seg_end)
        if lo >= hi:
            result.append(seg)
            continue

        before = seg.text[: lo - seg_start]
        overlap = seg.text[lo - seg_start : hi - seg_start]
        after = seg.text[hi - seg_start :]

        if before:
            result.append(Segment(before, seg.decorations))
        result.append(Segment(overlap, (*seg.marks, decoration)))
        if after:
            result.append(Segment(after, seg.decorations))

    return result


def inject_anchor_by_text(
    rt: RichText,
    target_text: str,
    decoration: Decoration,
    *,
    occurrence: int = 1,
) -> RichText:
    """
    Decorate an occurrence of ``target_text`` (the first one by default).

    Occurrences are counted without overlap, left to right.
    """
    if not target_text:
        raise EmptyTarget()
    if occurrence < 1:
        raise ValueError(f"occurrence must be >= 1, got {occurrence}")

    plain = to_plain_text(rt)
    index = -1
    search_from = 0
    for _ in range(occurrence):
        index = plain.find(target_text, search_from)
        if index == -1:
            raise TextNotFound(target_text, occurrence)
        search_from = index + len(target_text)

    return inject_decoration(rt, index, index + len(target_text), decoration)


def extract_text_by_decoration(rt: RichText | None, decoration: Decoration) -> str | None:
    """
    Concatenate the text of every segment carrying ``decoration``.

    Matching segments are joined in order even when they are not adjacent;
    contiguity is not checked.
    """
    parts = [seg.text for seg in rt or () if decoration in seg.marks]
    if not parts:
        return None
    return "".join(parts)
