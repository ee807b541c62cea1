"""
Workspace service: pages, child blocks, comments, backlinks and history
read and written through the v3 protocol.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from v3client.errors import V3Error
from v3client.models.workspace import Backlink, CommentAuthor, CommentCreateResult, CommentItem
from v3client.services.http_client import V3HttpClient
from v3engine.operations import create_comment_ops, create_inline_comment_ops, now_ms
from v3engine.record_map import COLLECTION, COMMENT, DISCUSSION, USER, RecordMap
from v3engine.richtext import (
    coerce_rich_text,
    encode_rich_text,
    extract_text_by_decoration,
    inject_anchor_by_text,
    to_plain_text,
)
from v3engine.transforms import ms_to_iso, normalize_block, transform_page_detail, user_display_name
from v3engine.types import CommentAnchor

logger = logging.getLogger(__name__)


def _title_text(block: dict[str, Any] | None) -> str | None:
    if not block:
        return None
    title = (block.get("properties") or {}).get("title")
    return to_plain_text(coerce_rich_text(title)) if title else None


class WorkspaceService:
    """Page-level reads and comment writes over one v3 session."""

    def __init__(self, http: V3HttpClient) -> None:
        self.http = http
        self.settings = http.settings

    # -- pages ----------------------------------------------------------------

    async def get_page(self, page_id: str) -> dict[str, Any]:
        """Page detail. Database rows get every schema column flattened."""
        records, _ = await self.http.load_page_chunk(page_id, limit=1)
        block = records.block(page_id)
        if block is None:
            raise V3Error(f"Page not found: {page_id}")

        schema = None
        if block.get("parent_table") == COLLECTION:
            collection = records.collection(block.get("parent_id", ""))
            if collection is None:
                collection = await self.http.fetch_collection(block.get("parent_id", ""))
            schema = (collection or {}).get("schema")

        return transform_page_detail(block, schema)

    async def list_children(self, block_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Live direct children in content order, normalised."""
        records, _ = await self.http.load_page_chunk(block_id, limit=limit)
        return [normalize_block(child) for child in records.children(block_id)]

    async def get_all_blocks(self, block_id: str) -> list[dict[str, Any]]:
        """Every live direct child, following page-chunk cursors up to MAX_BLOCKS."""
        blocks: list[dict[str, Any]] = []
        seen: set[str] = set()
        cursor = None
        chunk_number = 0

        while len(blocks) < self.settings.MAX_BLOCKS:
            records, cursor = await self.http.load_page_chunk(
                block_id,
                limit=self.settings.PAGE_CHUNK_LIMIT,
                cursor=cursor,
                chunk_number=chunk_number,
            )
            before = len(blocks)
            for child in records.children(block_id):
                if child["id"] not in seen:
                    seen.add(child["id"])
                    blocks.append(normalize_block(child))

            if not cursor.get("stack") or len(blocks) == before:
                break
            chunk_number += 1

        return blocks[: self.settings.MAX_BLOCKS]

    async def get_child_blocks(self, block_ids: list[str]) -> dict[str, list[dict[str, Any]]]:
        """Children of several blocks, fetched concurrently in bounded batches."""
        result: dict[str, list[dict[str, Any]]] = {}
        size = max(1, self.settings.CHILD_BATCH_SIZE)
        for start in range(0, len(block_ids), size):
            batch = block_ids[start:start + size]
            fetched = await asyncio.gather(*(self.get_all_blocks(bid) for bid in batch))
            result.update(zip(batch, fetched))
        return result

    # -- comments -------------------------------------------------------------

    async def _fill_missing(self, records: RecordMap, table: str, ids: list[str]) -> RecordMap:
        missing = [i for i in dict.fromkeys(ids) if records.get(table, i) is None]
        if not missing:
            return records
        logger.debug("Fetching %d missing %s records", len(missing), table)
        return records.merge(await self.http.sync_record_values([(table, i) for i in missing]))

    async def list_comments(self, page_id: str) -> list[CommentItem]:
        """
        Page-level and inline comments of a page.

        Inline discussions are found on the page's live child blocks; their
        anchor text is the span decorated with the discussion id.
        """
        records, _ = await self.http.load_page_chunk(page_id, limit=self.settings.PAGE_CHUNK_LIMIT)
        page = records.block(page_id)
        if page is None:
            raise V3Error(f"Page not found: {page_id}")

        # discussion id -> block holding the anchor (None for page-level)
        owners: dict[str, str | None] = {did: None for did in page.get("discussions") or []}
        for child in records.children(page_id):
            for did in child.get("discussions") or []:
                owners.setdefault(did, child["id"])

        records = await self._fill_missing(records, DISCUSSION, list(owners))
        comment_ids = []
        for did in owners:
            discussion = records.discussion(did) or {}
            comment_ids.extend(discussion.get("comments") or [])
        records = await self._fill_missing(records, COMMENT, comment_ids)

        author_ids = [c.get("created_by_id") for c in map(records.comment, comment_ids) if c and c.get("created_by_id")]
        records = await self._fill_missing(records, USER, author_ids)

        items = []
        for did, block_id in owners.items():
            discussion = records.discussion(did)
            if discussion is None:
                continue
            anchor_text = None
            if block_id is not None:
                block = records.block(block_id) or {}
                title = coerce_rich_text((block.get("properties") or {}).get("title"))
                anchor_text = extract_text_by_decoration(title, CommentAnchor(did))

            for cid in discussion.get("comments") or []:
                comment = records.comment(cid)
                if comment is None or comment.get("alive") is False:
                    continue
                author_id = comment.get("created_by_id", "")
                user = records.user(author_id)
                items.append(CommentItem(
                    id=cid,
                    discussion_id=did,
                    body=to_plain_text(coerce_rich_text(comment.get("text"))),
                    author=CommentAuthor(id=author_id, name=user_display_name(user) if user else None),
                    created_time=ms_to_iso(comment.get("created_time")),
                    kind="inline" if block_id else "page",
                    anchor_text=anchor_text,
                    block_id=block_id,
                    resolved=bool(discussion.get("resolved")),
                ))
        return items

    async def add_comment(self, page_id: str, body: str) -> CommentCreateResult:
        """Start a page-level discussion with one comment."""
        discussion_id, comment_id = str(uuid.uuid4()), str(uuid.uuid4())
        now = now_ms()
        await self.http.save_transactions(create_comment_ops(
            discussion_id=discussion_id,
            comment_id=comment_id,
            page_id=page_id,
            space_id=self.http.space_id,
            user_id=self.http.user_id,
            text=body,
            now=now,
        ))
        return CommentCreateResult(
            id=comment_id,
            discussion_id=discussion_id,
            body=body,
            created_time=ms_to_iso(now),
        )

    async def add_inline_comment(self, block_id: str, body: str, text: str, occurrence: int = 1) -> CommentCreateResult:
        """
        Anchor a new discussion to ``text`` inside a block.

        Raises:
            V3Error: if the block is missing or has no text
            TextNotFound: if the requested occurrence of ``text`` is absent
        """
        records, _ = await self.http.load_page_chunk(block_id, limit=1)
        block = records.block(block_id)
        if block is None:
            raise V3Error(f"Block not found: {block_id}")

        title = coerce_rich_text((block.get("properties") or {}).get("title"))
        if not to_plain_text(title):
            raise V3Error(f"Block {block_id} has no text content")

        discussion_id, comment_id = str(uuid.uuid4()), str(uuid.uuid4())
        updated = inject_anchor_by_text(title, text, CommentAnchor(discussion_id), occurrence=occurrence)
        now = now_ms()

        await self.http.save_transactions(create_inline_comment_ops(
            discussion_id=discussion_id,
            comment_id=comment_id,
            block_id=block_id,
            space_id=self.http.space_id,
            user_id=self.http.user_id,
            text=body,
            updated_title=encode_rich_text(updated),
            now=now,
        ))
        return CommentCreateResult(
            id=comment_id,
            discussion_id=discussion_id,
            body=body,
            created_time=ms_to_iso(now),
            anchor_text=text,
        )

    # -- links and history ----------------------------------------------------

    async def get_backlinks(self, block_id: str) -> list[Backlink]:
        """Pages mentioning ``block_id``, one entry per page."""
        raw, records = await self.http.get_backlinks_for_block(block_id)
        backlinks: dict[str, Backlink] = {}
        for entry in raw:
            source_id = (entry.get("mentioned_from") or {}).get("block_id")
            if not source_id:
                continue
            block = records.block(source_id)
            page = records.block(block["parent_id"]) if block and block.get("parent_id") else None
            page_id = page["id"] if page else source_id
            if page_id in backlinks:
                continue
            backlinks[page_id] = Backlink(
                block_id=source_id,
                page_id=page_id,
                page_title=_title_text(page) or _title_text(block),
            )
        return list(backlinks.values())

    async def get_snapshots(self, page_id: str, limit: int = 20) -> list[dict[str, Any]]:
        """Version history of a page, newest first as returned."""
        return [
            {
                "id": snap.get("id"),
                "version": snap.get("version"),
                "last_version": snap.get("last_version"),
                "timestamp": ms_to_iso(snap.get("timestamp")),
                "authors": [a.get("id") for a in snap.get("authors") or []],
            }
            for snap in await self.http.get_snapshots_list(page_id, size=limit)
        ]

    async def get_activity(self, page_id: str | None = None, limit: int = 20) -> list[dict[str, Any]]:
        """Recent activity for the workspace, or for one page."""
        data = await self.http.get_activity_log(navigable_block_id=page_id, limit=limit)
        activities = data.get("activities") or {}
        records = RecordMap.from_response(data)

        entries = []
        for act_id in data.get("activityIds") or []:
            activity = activities.get(act_id)
            if activity is None:
                entries.append({"id": act_id})
                continue
            target_id = activity.get("navigable_block_id") or activity.get("parent_id")
            authors = []
            for edit in activity.get("edits") or []:
                for author in edit.get("authors") or []:
                    user = records.user(author.get("id", ""))
                    name = user_display_name(user) if user else None
                    authors.append(name or author.get("id"))
            entries.append({
                "id": act_id,
                "type": activity.get("type"),
                "page_id": target_id,
                "page_title": _title_text(records.block(target_id)) if target_id else None,
                "authors": list(dict.fromkeys(authors)),
                "edit_types": [e.get("type") for e in activity.get("edits") or []],
                "start_time": ms_to_iso(activity.get("start_time")),
                "end_time": ms_to_iso(activity.get("end_time")),
            })
        return entries
