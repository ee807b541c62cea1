"""
v3 Engine: RecordMap Store

Read-only view over the ``{table: {id: {value, role}}}`` snapshots that
most v3 calls return. Dead blocks (``alive: false``) are tombstones and are
never returned by traversal helpers.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

BLOCK = "block"
COLLECTION = "collection"
COLLECTION_VIEW = "collection_view"
USER = "notion_user"
SPACE = "space"
DISCUSSION = "discussion"
COMMENT = "comment"

COLLECTION_BLOCK_TYPES = {"collection_view_page", "collection_view"}


def _unwrap(entry: Any) -> dict[str, Any] | None:
    """
    Pull the entity out of one record entry.

    syncRecordValues nests one level deeper than the other calls:
    ``{value: {value: entity, role}}``.
    """
    if not isinstance(entry, dict):
        return None
    value = entry.get("value")
    if isinstance(value, dict) and isinstance(value.get("value"), dict) and "id" not in value:
        value = value["value"]
    return value if isinstance(value, dict) else None


class RecordMap:
    """Immutable snapshot of entity tables. merge() returns a new instance."""

    __slots__ = ("_tables",)

    def __init__(self, raw: Mapping[str, Any] | None = None) -> None:
        tables: dict[str, dict[str, dict[str, Any]]] = {}
        for table, entries in (raw or {}).items():
            if not isinstance(entries, dict):
                continue
            rows = {}
            for entity_id, entry in entries.items():
                value = _unwrap(entry)
                if value is not None:
                    rows[entity_id] = copy.deepcopy(value)
            tables[table] = rows
        self._tables = tables

    @classmethod
    def from_response(cls, response: Mapping[str, Any] | None) -> RecordMap:
        """Build from a full response body, i.e. ``{"recordMap": {...}, ...}``."""
        return cls((response or {}).get("recordMap"))

    def __repr__(self) -> str:  # pragma: no cover
        counts = ", ".join(f"{t}={len(rows)}" for t, rows in self._tables.items())
        return f"RecordMap({counts})"

    def __contains__(self, table: str) -> bool:
        return table in self._tables

    # -- raw access ---------------------------------------------------------

    def tables(self) -> list[str]:
        return list(self._tables)

    def table(self, table: str) -> Mapping[str, Mapping[str, Any]]:
        rows = self._tables.get(table, {})
        return MappingProxyType({k: MappingProxyType(v) for k, v in rows.items()})

    def get(self, table: str, entity_id: str) -> dict[str, Any] | None:
        """Copy of the entity, or None. Tombstones are returned as-is."""
        value = self._tables.get(table, {}).get(entity_id)
        return copy.deepcopy(value) if value is not None else None

    def ids(self, table: str) -> list[str]:
        return list(self._tables.get(table, {}))

    def merge(self, other: RecordMap) -> RecordMap:
        """New RecordMap with ``other``'s entries layered over this one."""
        merged = RecordMap()
        tables = {t: dict(rows) for t, rows in self._tables.items()}
        for table, rows in other._tables.items():
            tables.setdefault(table, {}).update(rows)
        merged._tables = tables
        return merged

    # -- blocks -------------------------------------------------------------

    def block(self, block_id: str) -> dict[str, Any] | None:
        return self.get(BLOCK, block_id)

    def alive_block(self, block_id: str) -> dict[str, Any] | None:
        block = self.block(block_id)
        if block is None or block.get("alive") is False:
            return None
        return block

    def blocks(self) -> Iterator[dict[str, Any]]:
        """Every live block in the map."""
        for block_id in self._tables.get(BLOCK, {}):
            block = self.alive_block(block_id)
            if block is not None:
                yield block

    def children(self, block_id: str) -> list[dict[str, Any]]:
        """Live children of ``block_id`` in content order. Missing ids are skipped."""
        parent = self.block(block_id)
        if parent is None:
            return []
        children = []
        for child_id in parent.get("content") or []:
            child = self.alive_block(child_id)
            if child is not None:
                children.append(child)
        return children

    def count_blocks(self) -> int:
        return sum(1 for _ in self.blocks())

    # -- collections --------------------------------------------------------

    def collection(self, collection_id: str) -> dict[str, Any] | None:
        return self.get(COLLECTION, collection_id)

    def first_collection(self) -> dict[str, Any] | None:
        ids = self.ids(COLLECTION)
        return self.collection(ids[0]) if ids else None

    def first_collection_view_id(self) -> str | None:
        ids = self.ids(COLLECTION_VIEW)
        return ids[0] if ids else None

    def collection_for_block(self, block_id: str) -> dict[str, Any] | None:
        """
        Collection behind a database block, or the parent collection of a
        database row.
        """
        block = self.block(block_id)
        if block is None:
            return None
        if block.get("type") in COLLECTION_BLOCK_TYPES:
            collection_id = block.get("collection_id")
            if collection_id:
                return self.collection(collection_id)
            return self.first_collection()
        if block.get("parent_table") == COLLECTION:
            return self.collection(block.get("parent_id", ""))
        return None

    # -- users / spaces -----------------------------------------------------

    def user(self, user_id: str) -> dict[str, Any] | None:
        return self.get(USER, user_id) or self.get("user", user_id)

    def users(self) -> list[dict[str, Any]]:
        table = USER if USER in self._tables else "user"
        return [self.get(table, uid) for uid in self.ids(table)]

    def first_space(self) -> dict[str, Any] | None:
        ids = self.ids(SPACE)
        return self.get(SPACE, ids[0]) if ids else None

    # -- discussions --------------------------------------------------------

    def discussion(self, discussion_id: str) -> dict[str, Any] | None:
        return self.get(DISCUSSION, discussion_id)

    def comment(self, comment_id: str) -> dict[str, Any] | None:
        return self.get(COMMENT, comment_id)
