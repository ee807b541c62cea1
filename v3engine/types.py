"""
v3 Engine: Shared Types

Data classes used across richtext, properties, record_map and patches.
These are the contracts that bind the engine together.

Rich text on the wire is a list of segments, each ``[text]`` or
``[text, [decoration, ...]]``. A decoration is ``[tag, *payload]``.
Known tags get their own dataclass; anything else is kept verbatim in
``UnknownDecoration`` so a rewrite never loses information.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

# ---------------------------------------------------------------------------
# Decoration tags
# ---------------------------------------------------------------------------

STYLE_TAGS: set[str] = {"b", "i", "c"}

DATE_TAG = "d"
USER_MENTION_TAG = "u"
PAGE_MENTION_TAG = "p"
COMMENT_ANCHOR_TAG = "m"

# Placeholder character the platform uses as the text of a mention segment
MENTION_PLACEHOLDER = "‣"


# ---------------------------------------------------------------------------
# Errors (input-contract violations, always surfaced to the caller)
# ---------------------------------------------------------------------------


class RichTextError(ValueError):
    """Base class for rich-text input-contract violations."""


class InvalidRange(RichTextError):
    def __init__(self, start: int, end: int) -> None:
        super().__init__(f"INVALID_RANGE: [{start}, {end}) is empty or negative")
        self.start = start
        self.end = end


class EmptyTarget(RichTextError):
    def __init__(self) -> None:
        super().__init__("EMPTY_TARGET: target text must not be empty")


class TextNotFound(RichTextError):
    def __init__(self, target: str, occurrence: int = 1) -> None:
        if occurrence == 1:
            msg = f"TEXT_NOT_FOUND: {target!r} not found in rich text"
        else:
            msg = f"TEXT_NOT_FOUND: occurrence {occurrence} of {target!r} not found in rich text"
        super().__init__(msg)
        self.target = target
        self.occurrence = occurrence


# ---------------------------------------------------------------------------
# Decorations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StyleMark:
    """Bold / italic / inline-code mark. No payload."""

    tag: str


@dataclass(frozen=True)
class DateRange:
    """
    Date decoration. ``raw`` keeps the wire payload (time zone, reminder,
    date format...) so re-encoding is lossless.
    """

    start: str | None
    end: str | None = None
    raw: dict[str, Any] | None = field(default=None, compare=False)

    tag = DATE_TAG


@dataclass(frozen=True)
class UserMention:
    user_id: str

    tag = USER_MENTION_TAG


@dataclass(frozen=True)
class PageMention:
    page_id: str

    tag = PAGE_MENTION_TAG


@dataclass(frozen=True)
class CommentAnchor:
    """Marks the text an inline comment (discussion) is attached to."""

    discussion_id: str

    tag = COMMENT_ANCHOR_TAG


@dataclass(frozen=True)
class UnknownDecoration:
    """Any tag the engine does not model. Payload is kept as on the wire."""

    tag: str
    payload: tuple[Any, ...] = ()


Decoration = Union[StyleMark, DateRange, UserMention, PageMention, CommentAnchor, UnknownDecoration]


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Segment:
    """
    One run of text with its decorations.

    ``decorations is None`` means the wire segment had no decoration list
    at all (``[text]``); an empty tuple means it had an empty one
    (``[text, []]``). Keeping the two apart makes re-encoding byte-exact.
    """

    text: str
    decorations: tuple[Decoration, ...] | None = None

    @property
    def marks(self) -> tuple[Decoration, ...]:
        return self.decorations or ()


RichText = list[Segment]


# ---------------------------------------------------------------------------
# Property schema
# ---------------------------------------------------------------------------


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


@dataclass
class SelectOption:
    id: str
    label: str
    color: str | None = None


@dataclass
class OptionGroup:
    name: str
    member_option_ids: list[str] = field(default_factory=list)


@dataclass
class PropertySchema:
    """One column of a collection schema, keyed elsewhere by internal id."""

    name: str
    type: str
    options: list[SelectOption] = field(default_factory=list)
    groups: list[OptionGroup] = field(default_factory=list)
    related_collection_id: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> PropertySchema:
        options = [
            SelectOption(id=o.get("id", ""), label=o.get("value", ""), color=o.get("color"))
            for o in _as_list(d.get("options"))
            if isinstance(o, dict)
        ]
        groups = [
            OptionGroup(
                name=g.get("name", ""),
                member_option_ids=[i for i in _as_list(g.get("optionIds")) if isinstance(i, str)],
            )
            for g in _as_list(d.get("groups"))
            if isinstance(g, dict)
        ]
        prop_type = d.get("type")
        return cls(
            name=d.get("name", ""),
            type=prop_type if isinstance(prop_type, str) else "",
            options=options,
            groups=groups,
            related_collection_id=d.get("collection_id"),
        )

    def option_label(self, option_id: str) -> str | None:
        for option in self.options:
            if option.id == option_id:
                return option.label
        return None
