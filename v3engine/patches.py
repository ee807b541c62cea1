"""
v3 Engine: Streaming Reconstruction

runInferenceTranscript answers in one of two wire shapes:

  cumulative  every ``agent-inference`` event carries the whole answer so far
  patch       ``patch-start`` seeds a slot array, then ``patch`` events mutate
              it with ``{o, p, v}`` operations

normalize_patch_stream() folds the patch shape into the cumulative one so
consumers only ever see ``agent-inference`` events.

Patch vocabulary (as observed on the wire, not RFC 6902):

  a  add       path ending in ``-`` appends to the list there
               (``/s/-`` appends a new slot); otherwise sets the key/index
  x  append    string concatenation onto an existing string
  r  remove    list -> splice out the index; dict -> delete the key

An operation whose path cannot be resolved is ignored. Stream continuity
matters more than strict conformance here, so apply_patch_or_ignore never
raises.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

INFERENCE_TYPE = "agent-inference"
PATCH_START_TYPE = "patch-start"
PATCH_TYPE = "patch"

_ROOT = "s"
_APPEND = "-"


# ---------------------------------------------------------------------------
# Path resolution
# ---------------------------------------------------------------------------


def _split_path(path: str) -> list[str] | None:
    """'/s/0/value/-' -> ['0', 'value', '-'], or None if not rooted at /s."""
    if not isinstance(path, str) or not path.startswith("/"):
        return None
    parts = path.split("/")[1:]
    if not parts or parts[0] != _ROOT or len(parts) < 2:
        return None
    return parts[1:]


def _list_index(container: list[Any], key: str) -> int | None:
    if not (key.isascii() and key.isdigit()):
        return None
    index = int(key)
    return index if index < len(container) else None


def _step(container: Any, key: str) -> Any:
    """One step down the tree. Raises LookupError when the step is impossible."""
    if isinstance(container, list):
        index = _list_index(container, key)
        if index is None:
            raise LookupError(key)
        return container[index]
    if isinstance(container, dict):
        if key not in container:
            raise LookupError(key)
        return container[key]
    raise LookupError(key)


def _resolve_parent(slots: list[Any], keys: list[str]) -> Any:
    node: Any = slots
    for key in keys[:-1]:
        node = _step(node, key)
    return node


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def _op_add(parent: Any, key: str, value: Any) -> bool:
    if key == _APPEND:
        if not isinstance(parent, list):
            return False
        parent.append(copy.deepcopy(value))
        return True
    if isinstance(parent, list):
        index = _list_index(parent, key)
        if index is None:
            return False
        parent[index] = copy.deepcopy(value)
        return True
    if isinstance(parent, dict):
        parent[key] = copy.deepcopy(value)
        return True
    return False


def _op_append_text(parent: Any, key: str, value: Any) -> bool:
    if not isinstance(value, str):
        return False
    if isinstance(parent, list):
        index = _list_index(parent, key)
        if index is None or not isinstance(parent[index], str):
            return False
        parent[index] += value
        return True
    if isinstance(parent, dict):
        if not isinstance(parent.get(key), str):
            return False
        parent[key] += value
        return True
    return False


def _op_remove(parent: Any, key: str, value: Any) -> bool:
    if isinstance(parent, list):
        index = _list_index(parent, key)
        if index is None:
            return False
        del parent[index]
        return True
    if isinstance(parent, dict):
        if key not in parent:
            return False
        del parent[key]
        return True
    return False


_OPS = {
    "a": _op_add,
    "x": _op_append_text,
    "r": _op_remove,
}


def apply_patch_or_ignore(slots: list[Any], op: str, path: str, value: Any = None) -> bool:
    """
    Apply one patch operation to ``slots`` in place.

    Returns True if applied, False if the operation was ignored (unknown op,
    path not under /s, missing step, wrong container or value type).
    """
    handler = _OPS.get(op) if isinstance(op, str) else None
    keys = _split_path(path)
    if handler is None or keys is None:
        logger.debug("patch ignored: unsupported op=%r path=%r", op, path)
        return False

    try:
        parent = _resolve_parent(slots, keys)
    except LookupError:
        logger.debug("patch ignored: unresolvable path %r", path)
        return False

    applied = handler(parent, keys[-1], value)
    if not applied:
        logger.debug("patch ignored: op=%r does not fit target at %r", op, path)
    return applied


# ---------------------------------------------------------------------------
# Slot state
# ---------------------------------------------------------------------------


def _is_inference(slot: Any) -> bool:
    return isinstance(slot, dict) and slot.get("type") == INFERENCE_TYPE and isinstance(slot.get("value"), list)


@dataclass
class SlotState:
    """
    Working state of one patch-shaped stream. Owned by exactly one
    normalize_patch_stream() call and discarded with it.
    """

    slots: list[Any] = field(default_factory=list)
    version: int = 0

    @classmethod
    def from_patch_start(cls, event: dict[str, Any]) -> SlotState:
        data = event.get("data")
        slots = data.get("s") if isinstance(data, dict) else None
        version = event.get("version")
        return cls(
            slots=copy.deepcopy(slots) if isinstance(slots, list) else [],
            version=version if isinstance(version, int) else 0,
        )

    def apply(self, ops: Iterable[Any]) -> int:
        """Apply a patch batch. Returns how many operations took effect."""
        applied = 0
        for op in ops:
            if not isinstance(op, dict):
                continue
            if apply_patch_or_ignore(self.slots, op.get("o"), op.get("p"), op.get("v")):
                applied += 1
        self.version += 1
        return applied

    def inference_slot(self) -> dict[str, Any] | None:
        """Latest slot tagged agent-inference, as a detached copy."""
        for slot in reversed(self.slots):
            if _is_inference(slot):
                return copy.deepcopy(slot)
        return None


# ---------------------------------------------------------------------------
# Stream normalisation
# ---------------------------------------------------------------------------


async def normalize_patch_stream(events: AsyncIterable[dict[str, Any]]) -> AsyncIterator[dict[str, Any]]:
    """
    Fold patch-shaped events into cumulative ``agent-inference`` events.

    ``patch-start`` seeds the state and yields nothing. Each ``patch`` batch
    is applied and then the current inference slot, if any, is yielded.
    Every other event passes through unchanged.
    """
    state: SlotState | None = None

    async for event in events:
        event_type = event.get("type") if isinstance(event, dict) else None

        if event_type == PATCH_START_TYPE:
            state = SlotState.from_patch_start(event)
            continue

        if event_type == PATCH_TYPE:
            if state is None:
                logger.debug("patch before patch-start, ignored")
                continue
            ops = event.get("v")
            state.apply(ops if isinstance(ops, list) else [])
            slot = state.inference_slot()
            if slot is not None:
                yield slot
            continue

        yield event
