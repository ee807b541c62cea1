"""
v3 Engine: Property Flattener

Collection rows store every property as rich text keyed by an internal
property id. The collection schema says what each id means. This module
turns (rich text, schema entry) into a plain domain value.

flatten_value never raises: absent or malformed input gives the default
for the property type.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from v3engine.richtext import coerce_rich_text, to_plain_text
from v3engine.types import DateRange, PageMention, PropertySchema, RichText, UserMention

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Schema helpers
# ---------------------------------------------------------------------------


def parse_schema(raw: dict[str, Any] | None) -> dict[str, PropertySchema]:
    """Wire collection schema -> {property_id: PropertySchema}."""
    if not raw:
        return {}
    return {
        prop_id: PropertySchema.from_dict(entry)
        for prop_id, entry in raw.items()
        if isinstance(entry, dict)
    }


def _as_schema(entry: PropertySchema | dict[str, Any]) -> PropertySchema:
    if isinstance(entry, PropertySchema):
        return entry
    return PropertySchema.from_dict(entry if isinstance(entry, dict) else {})


def describe_schema(schema: dict[str, PropertySchema]) -> list[dict[str, Any]]:
    """
    Human-facing schema listing.

    Group membership is resolved through option ids, so renaming or
    reordering options never moves an option between groups.
    """
    described: list[dict[str, Any]] = []
    for prop_id, prop in schema.items():
        item: dict[str, Any] = {"id": prop_id, "name": prop.name, "type": prop.type}
        if prop.options:
            item["options"] = [o.label for o in prop.options]
        if prop.groups:
            item["groups"] = {
                g.name: [o.label for o in prop.options if o.id in g.member_option_ids]
                for g in prop.groups
            }
        if prop.related_collection_id:
            item["related_collection_id"] = prop.related_collection_id
        described.append(item)
    return described


# ---------------------------------------------------------------------------
# Per-type flatteners
# ---------------------------------------------------------------------------


def _text(rt: RichText, text: str) -> str:
    return text


def _text_or_none(rt: RichText, text: str) -> str | None:
    return text or None


def _number(rt: RichText, text: str) -> int | float | None:
    stripped = text.strip()
    if not stripped:
        return None
    # int() and float() accept digit-group underscores
    if "_" not in stripped:
        try:
            return int(stripped)
        except ValueError:
            pass
        try:
            return float(stripped)
        except ValueError:
            pass
    logger.debug("flatten: non-numeric number property %r", text)
    return None


def _multi_select(rt: RichText, text: str) -> list[str]:
    return text.split(",") if text else []


def _checkbox(rt: RichText, text: str) -> bool:
    return text == "Yes"


def _date(rt: RichText, text: str) -> dict[str, Any] | None:
    for seg in rt:
        for dec in seg.marks:
            if isinstance(dec, DateRange):
                return {"start": dec.start, "end": dec.end}
    return {"start": text, "end": None} if text else None


def _people(rt: RichText, text: str) -> list[dict[str, str]]:
    return [{"id": d.user_id} for seg in rt for d in seg.marks if isinstance(d, UserMention) and d.user_id]


def _relation(rt: RichText, text: str) -> list[dict[str, str]]:
    return [{"id": d.page_id} for seg in rt for d in seg.marks if isinstance(d, PageMention) and d.page_id]


def _actor(rt: RichText, text: str) -> dict[str, str] | None:
    return {"id": text} if text else None


def _files(rt: RichText, text: str) -> list[dict[str, Any]]:
    return [{"name": text, "url": None}] if text else []


_FLATTENERS: dict[str, Callable[[RichText, str], Any]] = {
    "title": _text,
    "text": _text,
    "number": _number,
    "select": _text_or_none,
    "status": _text_or_none,
    "multi_select": _multi_select,
    "checkbox": _checkbox,
    "url": _text_or_none,
    "email": _text_or_none,
    "phone": _text_or_none,
    "phone_number": _text_or_none,
    "date": _date,
    "person": _people,
    "people": _people,
    "relation": _relation,
    "created_by": _actor,
    "last_edited_by": _actor,
    "files": _files,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def flatten_value(value: Any, schema_entry: PropertySchema | dict[str, Any]) -> Any:
    """
    Flatten one property value according to its schema entry.

    ``value`` may be wire rich text, decoded segments, or None. Unknown
    types (formula, rollup, created_time, unique_id, ...) flatten to their
    plain text, or None when empty.
    """
    prop = _as_schema(schema_entry)
    rt = coerce_rich_text(value)
    text = to_plain_text(rt)
    flatten = _FLATTENERS.get(prop.type, _text_or_none)
    return flatten(rt, text)


def flatten_properties(
    raw_props: dict[str, Any] | None,
    schema: dict[str, PropertySchema] | dict[str, dict[str, Any]],
) -> dict[str, Any]:
    """
    Flatten a row's properties, keyed by human-readable column name.

    Walks the schema, not the row, so every declared column appears in the
    result even when the row has no value for it.
    """
    props = raw_props if isinstance(raw_props, dict) else {}
    result: dict[str, Any] = {}
    for prop_id, entry in schema.items():
        prop = _as_schema(entry)
        result[prop.name] = flatten_value(props.get(prop_id), prop)
    return result


_SIMPLE_TYPES = {"title", "text", "select", "status", "url", "email", "phone", "phone_number"}


def build_property_value(value: Any, schema_entry: PropertySchema | dict[str, Any]) -> list[Any]:
    """
    Wire rich text for writing a simple property value.

    Types whose value lives in decorations (date, person, relation, files)
    cannot be built from a plain value and raise ValueError.
    """
    prop = _as_schema(schema_entry)

    if prop.type in _SIMPLE_TYPES:
        return [[str(value)]] if value not in (None, "") else []
    if prop.type == "number":
        return [[str(value)]] if value is not None else []
    if prop.type == "multi_select":
        if isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value)
        return [[str(value)]] if value else []
    if prop.type == "checkbox":
        return [["Yes" if value else "No"]]
    if prop.type in ("date", "person", "people", "relation", "files"):
        raise ValueError(f"UNSUPPORTED_PROPERTY_TYPE: cannot build a {prop.type} value from plain input")

    return [[str(value)]] if value not in (None, "") else []
