"""
Tests for v3engine/patches.py

Covers:
  - the a / x / r operation vocabulary
  - ignored operations leave the slots untouched
  - SlotState versioning and inference-slot selection
  - normalize_patch_stream over both wire shapes
"""

from __future__ import annotations

import copy

import pytest

from v3engine.patches import SlotState, apply_patch_or_ignore, normalize_patch_stream


async def from_list(items):
    for item in items:
        yield item


async def collect(events):
    return [e async for e in normalize_patch_stream(from_list(events))]


def inference(text, **extra):
    return {"type": "agent-inference", "value": [{"type": "text", "content": text}], **extra}


# ============================================================================
# apply_patch_or_ignore
# ============================================================================


class TestAdd:
    def test_sets_object_key(self):
        slots = [{"type": "test"}]
        assert apply_patch_or_ignore(slots, "a", "/s/0/key", "value")
        assert slots[0]["key"] == "value"

    def test_appends_with_dash(self):
        slots = [{"arr": ["a", "b"]}]
        apply_patch_or_ignore(slots, "a", "/s/0/arr/-", "c")
        assert slots[0]["arr"] == ["a", "b", "c"]

    def test_appends_new_slot(self):
        slots = []
        apply_patch_or_ignore(slots, "a", "/s/-", {"type": "agent-inference", "value": []})
        assert len(slots) == 1
        assert slots[0]["type"] == "agent-inference"

    def test_sets_list_index(self):
        slots = [{"arr": ["a", "b"]}]
        apply_patch_or_ignore(slots, "a", "/s/0/arr/1", "z")
        assert slots[0]["arr"] == ["a", "z"]

    def test_out_of_range_index_ignored(self):
        slots = [{"arr": ["a"]}]
        assert not apply_patch_or_ignore(slots, "a", "/s/0/arr/5", "z")
        assert slots[0]["arr"] == ["a"]

    def test_value_is_copied(self):
        value = {"nested": ["x"]}
        slots = []
        apply_patch_or_ignore(slots, "a", "/s/-", value)
        value["nested"].append("y")
        assert slots[0] == {"nested": ["x"]}


class TestAppendText:
    def test_appends_not_replaces(self):
        slots = [{"content": "Hel"}]
        apply_patch_or_ignore(slots, "x", "/s/0/content", "lo")
        assert slots[0]["content"] == "Hello"

    def test_nested_path(self):
        slots = [{"value": [{"content": "start"}]}]
        apply_patch_or_ignore(slots, "x", "/s/0/value/0/content", " end")
        assert slots[0]["value"][0]["content"] == "start end"

    def test_non_string_target_ignored(self):
        slots = [{"count": 1}]
        assert not apply_patch_or_ignore(slots, "x", "/s/0/count", "2")
        assert slots[0]["count"] == 1

    def test_missing_target_ignored(self):
        slots = [{}]
        assert not apply_patch_or_ignore(slots, "x", "/s/0/content", "a")
        assert slots == [{}]


class TestRemove:
    def test_splices_list(self):
        slots = [{"arr": ["a", "b", "c"]}]
        apply_patch_or_ignore(slots, "r", "/s/0/arr/1")
        assert slots[0]["arr"] == ["a", "c"]

    def test_deletes_key(self):
        slots = [{"key": "v", "other": 1}]
        apply_patch_or_ignore(slots, "r", "/s/0/key")
        assert slots[0] == {"other": 1}

    def test_removes_slot(self):
        slots = [{"a": 1}, {"b": 2}]
        apply_patch_or_ignore(slots, "r", "/s/0")
        assert slots == [{"b": 2}]


class TestIgnored:
    @pytest.mark.parametrize(
        "op,path",
        [
            ("a", "/s/5/key"),  # slot index out of range
            ("a", "/x/0/key"),  # not rooted at /s
            ("a", "s/0/key"),  # not absolute
            ("a", "/s"),  # the slot list itself
            ("z", "/s/0/key"),  # unknown op
            ("a", "/s/0/missing/deeper"),  # missing intermediate
            ("r", "/s/0/nope"),  # nothing to remove
            ("a", "/s/0/type/x"),  # stepping into a string
            ("a", "/s/²/key"),  # digit-like but not an ASCII index
        ],
    )
    def test_state_untouched(self, op, path):
        slots = [{"type": "test"}]
        before = copy.deepcopy(slots)
        assert apply_patch_or_ignore(slots, op, path, "value") is False
        assert slots == before

    def test_none_path(self):
        assert apply_patch_or_ignore([], "a", None, 1) is False

    @pytest.mark.parametrize("op", [["a"], {"bad": 1}, None, 1])
    def test_non_string_op(self, op):
        slots = [{}]
        assert apply_patch_or_ignore(slots, op, "/s/0/k", 1) is False
        assert slots == [{}]

    def test_superscript_list_index(self):
        slots = [{"arr": ["a"]}]
        assert apply_patch_or_ignore(slots, "a", "/s/0/arr/²", "z") is False
        assert slots == [{"arr": ["a"]}]


# ============================================================================
# SlotState
# ============================================================================


class TestSlotState:
    def test_from_patch_start(self):
        state = SlotState.from_patch_start({"type": "patch-start", "data": {"s": [{"a": 1}]}, "version": 7})
        assert state.slots == [{"a": 1}]
        assert state.version == 7

    def test_missing_data(self):
        state = SlotState.from_patch_start({"type": "patch-start"})
        assert state.slots == []
        assert state.version == 0

    def test_apply_bumps_version_and_counts(self):
        state = SlotState(slots=[{"content": "a"}])
        applied = state.apply([
            {"o": "x", "p": "/s/0/content", "v": "b"},
            {"o": "x", "p": "/s/9/content", "v": "c"},
            "not-an-op",
        ])
        assert applied == 1
        assert state.version == 1
        assert state.slots == [{"content": "ab"}]

    def test_inference_slot_last_one_wins(self):
        state = SlotState(slots=[inference("first"), {"type": "title"}, inference("second")])
        assert state.inference_slot()["value"][0]["content"] == "second"

    def test_inference_slot_requires_list_value(self):
        state = SlotState(slots=[{"type": "agent-inference", "value": "oops"}])
        assert state.inference_slot() is None

    def test_inference_slot_is_detached(self):
        state = SlotState(slots=[inference("Hi")])
        state.inference_slot()["value"][0]["content"] = "mutated"
        assert state.slots[0]["value"][0]["content"] == "Hi"


# ============================================================================
# normalize_patch_stream
# ============================================================================


@pytest.mark.asyncio(loop_scope="session")
class TestNormalizePatchStream:
    async def test_patch_start_then_append_slot(self):
        events = await collect([
            {"type": "patch-start", "data": {"s": []}},
            {"type": "patch", "v": [{"o": "a", "p": "/s/-", "v": inference("Hi")}]},
        ])
        assert len(events) == 1
        assert events[0]["type"] == "agent-inference"
        assert events[0]["value"][0]["content"] == "Hi"

    async def test_patch_start_alone_yields_nothing(self):
        assert await collect([{"type": "patch-start", "data": {"s": [inference("x")]}}]) == []

    async def test_each_patch_yields_cumulative_text(self):
        events = await collect([
            {"type": "patch-start", "data": {"s": [inference("He")]}},
            {"type": "patch", "v": [{"o": "x", "p": "/s/0/value/0/content", "v": "llo"}]},
            {"type": "patch", "v": [{"o": "x", "p": "/s/0/value/0/content", "v": " world"}]},
        ])
        assert [e["value"][0]["content"] for e in events] == ["Hello", "Hello world"]

    async def test_yielded_events_are_snapshots(self):
        events = await collect([
            {"type": "patch-start", "data": {"s": [inference("a")]}},
            {"type": "patch", "v": [{"o": "x", "p": "/s/0/value/0/content", "v": "b"}]},
            {"type": "patch", "v": [{"o": "x", "p": "/s/0/value/0/content", "v": "c"}]},
        ])
        assert events[0]["value"][0]["content"] == "ab"

    async def test_patch_without_inference_slot_yields_nothing(self):
        events = await collect([
            {"type": "patch-start", "data": {"s": []}},
            {"type": "patch", "v": [{"o": "a", "p": "/s/-", "v": {"type": "config"}}]},
        ])
        assert events == []

    async def test_patch_before_start_ignored(self):
        events = await collect([{"type": "patch", "v": [{"o": "a", "p": "/s/-", "v": inference("x")}]}])
        assert events == []

    async def test_bad_ops_do_not_stop_stream(self):
        events = await collect([
            {"type": "patch-start", "data": {"s": [inference("ok")]}},
            {"type": "patch", "v": [{"o": "x", "p": "/s/3/value", "v": "!"}]},
            {"type": "patch", "v": "garbage"},
        ])
        assert [e["value"][0]["content"] for e in events] == ["ok", "ok"]

    async def test_malformed_op_then_valid_patch(self):
        events = await collect([
            {"type": "patch-start", "data": {"s": [inference("a")]}},
            {"type": "patch", "v": [{"o": {"bad": 1}, "p": "/s/0/value/0/content", "v": "!"}]},
            {"type": "patch", "v": [{"o": "a", "p": "/s/0/value/²", "v": "!"}]},
            {"type": "patch", "v": [{"o": "x", "p": "/s/0/value/0/content", "v": "b"}]},
        ])
        assert [e["value"][0]["content"] for e in events] == ["a", "a", "ab"]

    async def test_other_events_pass_through(self):
        title = {"type": "title", "value": "Trip plan"}
        record_map = {"type": "record-map", "recordMap": {}}
        cumulative = inference("Hello", finishedAt=1)
        assert await collect([title, record_map, cumulative]) == [title, record_map, cumulative]
