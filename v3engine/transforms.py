"""
v3 Engine: Entity Normalizers

Turn raw v3 entities into the flat shapes callers consume. Timestamps are
unix milliseconds on the wire and ISO 8601 here.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from v3engine.properties import flatten_properties, parse_schema
from v3engine.richtext import coerce_rich_text, to_plain_text

PAGE_URL_BASE = "https://www.notion.so"

# v3 block type -> public block type
BLOCK_TYPE_MAP: dict[str, str] = {
    "text": "paragraph",
    "header": "heading_1",
    "sub_header": "heading_2",
    "sub_sub_header": "heading_3",
    "bulleted_list": "bulleted_list_item",
    "numbered_list": "numbered_list_item",
    "to_do": "to_do",
    "toggle": "toggle",
    "code": "code",
    "quote": "quote",
    "callout": "callout",
    "divider": "divider",
    "image": "image",
    "bookmark": "bookmark",
    "equation": "equation",
    "page": "child_page",
    "collection_view_page": "child_database",
    "collection_view": "child_database",
    "table_of_contents": "table_of_contents",
    "breadcrumb": "breadcrumb",
    "column_list": "column_list",
    "column": "column",
    "embed": "embed",
    "video": "video",
    "pdf": "pdf",
    "audio": "audio",
    "file": "file",
}


def ms_to_iso(ms: int | float | None) -> str | None:
    if not ms:
        return None
    dt = datetime.fromtimestamp(ms / 1000, tz=UTC)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def page_url(entity_id: str) -> str:
    return f"{PAGE_URL_BASE}/{entity_id.replace('-', '')}"


def parent_ref(parent_table: str | None, parent_id: str | None) -> dict[str, str] | None:
    kind = {"collection": "database", "block": "page", "space": "workspace"}.get(parent_table or "")
    if kind is None or not parent_id:
        return None
    return {"type": kind, "id": parent_id}


def prop_text(block: dict[str, Any], name: str) -> str:
    props = block.get("properties") or {}
    return to_plain_text(coerce_rich_text(props.get(name)))


def normalize_block(block: dict[str, Any]) -> dict[str, Any]:
    """Flat view of one content block."""
    v3_type = block.get("type", "")
    title = prop_text(block, "title")
    props = block.get("properties") or {}
    fmt = block.get("format") or {}

    normalized: dict[str, Any] = {
        "id": block.get("id"),
        "type": BLOCK_TYPE_MAP.get(v3_type, v3_type),
        "rich_text": title,
        "has_children": bool(block.get("content")),
    }

    if v3_type == "to_do":
        normalized["checked"] = prop_text(block, "checked") == "Yes"
    elif v3_type == "code":
        normalized["language"] = prop_text(block, "language") or None
    elif v3_type == "image":
        normalized["url"] = fmt.get("display_source") or prop_text(block, "source") or None
        normalized["caption"] = prop_text(block, "caption") or None
    elif v3_type == "bookmark":
        normalized["url"] = prop_text(block, "link") or None
        normalized["caption"] = prop_text(block, "description") or None
    elif v3_type == "equation":
        normalized["expression"] = title
    elif v3_type in ("page", "collection_view_page", "collection_view"):
        normalized["title"] = title or None
    elif v3_type == "callout":
        normalized["emoji"] = fmt.get("page_icon")
    elif v3_type in ("embed", "link_preview"):
        normalized["url"] = prop_text(block, "source") or None
    elif v3_type in ("video", "pdf", "audio", "file"):
        normalized["url"] = prop_text(block, "source") or None
        normalized["caption"] = prop_text(block, "caption") or None
        normalized["title"] = title if "title" in props else None

    return normalized


def user_display_name(user: dict[str, Any]) -> str | None:
    name = " ".join(part for part in (user.get("given_name"), user.get("family_name")) if part)
    return name or None


def transform_user(user: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": user.get("id"),
        "name": user_display_name(user),
        "type": "person",
        "email": user.get("email"),
        "avatar_url": user.get("profile_photo"),
    }


def transform_query_row(block: dict[str, Any], raw_schema: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": block.get("id"),
        "url": page_url(block.get("id", "")),
        "properties": flatten_properties(block.get("properties"), parse_schema(raw_schema)),
        "created_at": ms_to_iso(block.get("created_time")),
        "last_edited_at": ms_to_iso(block.get("last_edited_time")),
    }


def transform_page_detail(block: dict[str, Any], raw_schema: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Page view. Database rows get every schema column flattened; plain pages
    only have a title.
    """
    if raw_schema:
        properties = flatten_properties(block.get("properties"), parse_schema(raw_schema))
    else:
        properties = {"title": prop_text(block, "title")}

    icon = (block.get("format") or {}).get("page_icon")
    return {
        "id": block.get("id"),
        "url": page_url(block.get("id", "")),
        "parent": parent_ref(block.get("parent_table"), block.get("parent_id")),
        "properties": properties,
        "icon": {"type": "emoji", "emoji": icon} if icon else None,
        "created_at": ms_to_iso(block.get("created_time")),
        "last_edited_at": ms_to_iso(block.get("last_edited_time")),
        "archived": block.get("alive") is False,
    }
