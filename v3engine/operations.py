"""
v3 Engine: Transaction Operations

Builders for the pointer/path/command/args operations that
saveTransactions accepts. Pure: timestamps can be passed in, and ids are
always supplied by the caller.
"""

from __future__ import annotations

import time
from typing import Any

from v3engine.record_map import BLOCK, COMMENT, DISCUSSION, USER


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Low-level builders
# ---------------------------------------------------------------------------


def pointer(table: str, record_id: str, space_id: str) -> dict[str, str]:
    return {"table": table, "id": record_id, "spaceId": space_id}


def set_op(ptr: dict[str, str], path: list[str], args: Any) -> dict[str, Any]:
    """Set a value at ``path`` (the whole record when path is [])."""
    return {"pointer": ptr, "path": path, "command": "set", "args": args}


def update_op(ptr: dict[str, str], args: dict[str, Any]) -> dict[str, Any]:
    """Shallow-merge ``args`` into the record root."""
    return {"pointer": ptr, "path": [], "command": "update", "args": args}


def list_after_op(ptr: dict[str, str], list_path: str, child_id: str, after_id: str | None = None) -> dict[str, Any]:
    args = {"id": child_id}
    if after_id:
        args["after"] = after_id
    return {"pointer": ptr, "path": [list_path], "command": "listAfter", "args": args}


def list_remove_op(ptr: dict[str, str], list_path: str, child_id: str) -> dict[str, Any]:
    return {"pointer": ptr, "path": [list_path], "command": "listRemove", "args": {"id": child_id}}


def edit_meta_op(ptr: dict[str, str], user_id: str, *, now: int | None = None) -> dict[str, Any]:
    return update_op(ptr, {
        "last_edited_time": now if now is not None else now_ms(),
        "last_edited_by_table": USER,
        "last_edited_by_id": user_id,
    })


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


def _discussion_and_comment_ops(
    *,
    discussion_id: str,
    comment_id: str,
    parent_block_id: str,
    space_id: str,
    user_id: str,
    text: str,
    now: int,
) -> list[dict[str, Any]]:
    dp = pointer(DISCUSSION, discussion_id, space_id)
    cp = pointer(COMMENT, comment_id, space_id)
    bp = pointer(BLOCK, parent_block_id, space_id)

    return [
        set_op(dp, [], {
            "id": discussion_id,
            "version": 0,
            "parent_id": parent_block_id,
            "parent_table": BLOCK,
            "resolved": False,
            "comments": [],
            "space_id": space_id,
            "alive": True,
        }),
        list_after_op(bp, "discussions", discussion_id),
        set_op(cp, [], {
            "id": comment_id,
            "version": 0,
            "parent_id": discussion_id,
            "parent_table": DISCUSSION,
            "text": [[text]],
            "created_by_table": USER,
            "created_by_id": user_id,
            "alive": True,
            "space_id": space_id,
        }),
        list_after_op(dp, "comments", comment_id),
        set_op(cp, ["created_time"], now),
        set_op(cp, ["last_edited_time"], now),
    ]


def create_comment_ops(
    *,
    discussion_id: str,
    comment_id: str,
    page_id: str,
    space_id: str,
    user_id: str,
    text: str,
    now: int | None = None,
) -> list[dict[str, Any]]:
    """A page-level discussion holding one comment."""
    return _discussion_and_comment_ops(
        discussion_id=discussion_id,
        comment_id=comment_id,
        parent_block_id=page_id,
        space_id=space_id,
        user_id=user_id,
        text=text,
        now=now if now is not None else now_ms(),
    )


def create_inline_comment_ops(
    *,
    discussion_id: str,
    comment_id: str,
    block_id: str,
    space_id: str,
    user_id: str,
    text: str,
    updated_title: list[Any],
    now: int | None = None,
) -> list[dict[str, Any]]:
    """
    A discussion anchored to text inside ``block_id``.

    ``updated_title`` is the block's wire title with the comment-anchor
    decoration already injected.
    """
    ts = now if now is not None else now_ms()
    ops = _discussion_and_comment_ops(
        discussion_id=discussion_id,
        comment_id=comment_id,
        parent_block_id=block_id,
        space_id=space_id,
        user_id=user_id,
        text=text,
        now=ts,
    )
    bp = pointer(BLOCK, block_id, space_id)
    ops.append(set_op(bp, ["properties", "title"], updated_title))
    ops.append(edit_meta_op(bp, user_id, now=ts))
    return ops


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


def create_block_ops(
    *,
    block_id: str,
    block_type: str,
    parent_id: str,
    parent_table: str,
    space_id: str,
    user_id: str,
    properties: dict[str, Any] | None = None,
    fmt: dict[str, Any] | None = None,
    now: int | None = None,
) -> list[dict[str, Any]]:
    """New block appended to its parent's content list."""
    ts = now if now is not None else now_ms()
    bp = pointer(BLOCK, block_id, space_id)
    # Rows of a database still hang off a block pointer.
    pp = pointer(BLOCK if parent_table == "collection" else parent_table, parent_id, space_id)

    args: dict[str, Any] = {
        "type": block_type,
        "id": block_id,
        "version": 0,
        "created_time": ts,
        "last_edited_time": ts,
        "parent_id": parent_id,
        "parent_table": parent_table,
        "alive": True,
        "created_by_table": USER,
        "created_by_id": user_id,
        "last_edited_by_table": USER,
        "last_edited_by_id": user_id,
        "space_id": space_id,
    }
    if properties:
        args["properties"] = properties
    if fmt:
        args["format"] = fmt

    return [
        set_op(bp, [], args),
        list_after_op(pp, "content", block_id),
        edit_meta_op(pp, user_id, now=ts),
    ]


def archive_block_ops(
    *,
    block_id: str,
    parent_id: str,
    parent_table: str,
    space_id: str,
    user_id: str,
    now: int | None = None,
) -> list[dict[str, Any]]:
    """Soft delete: the block becomes a tombstone and leaves its parent's content."""
    ts = now if now is not None else now_ms()
    bp = pointer(BLOCK, block_id, space_id)
    pp = pointer(parent_table, parent_id, space_id)
    return [
        update_op(bp, {
            "alive": False,
            "last_edited_time": ts,
            "last_edited_by_table": USER,
            "last_edited_by_id": user_id,
        }),
        list_remove_op(pp, "content", block_id),
        edit_meta_op(pp, user_id, now=ts),
    ]


def update_property_ops(
    *,
    block_id: str,
    space_id: str,
    user_id: str,
    properties: dict[str, Any] | None = None,
    fmt: dict[str, Any] | None = None,
    now: int | None = None,
) -> list[dict[str, Any]]:
    bp = pointer(BLOCK, block_id, space_id)
    ops = [set_op(bp, ["properties", key], value) for key, value in (properties or {}).items()]
    ops.extend(set_op(bp, ["format", key], value) for key, value in (fmt or {}).items())
    ops.append(edit_meta_op(bp, user_id, now=now))
    return ops
