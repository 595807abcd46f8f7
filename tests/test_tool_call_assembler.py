"""Tests for mooncow.llm.tool_call_assembler.ToolCallAssembler."""

from __future__ import annotations

import json

import pytest

from mooncow.llm.tool_call_assembler import ToolCallAssembler
from mooncow.llm.types import RawToolDelta


class TestSingleToolCall:
    """Assemble a single tool call from incremental deltas."""

    def test_basic_assembly(self):
        asm = ToolCallAssembler()

        assert asm.feed(RawToolDelta(call_index=0, id="call_1", name_delta="read_")) == []
        assert asm.feed(RawToolDelta(call_index=0, name_delta="page")) == []
        assert asm.feed(RawToolDelta(call_index=0, args_delta='{"url": ')) == []

        result = asm.feed(RawToolDelta(call_index=0, args_delta='"https://example.com"}'))
        assert len(result) == 1
        tc = result[0]
        assert tc.id == "call_1"
        assert tc.name == "read_page"
        assert tc.arguments == {"url": "https://example.com"}

    def test_done_after_firing_is_ignored(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="c", name_delta="echo"))
        assert len(asm.feed(RawToolDelta(call_index=0, args_delta='{"message": "x"}'))) == 1
        assert asm.feed(RawToolDelta(call_index=0, done=True)) == []
        assert asm.flush() == []
        assert asm.errors == []

    def test_single_delta_with_everything(self):
        asm = ToolCallAssembler()
        result = asm.feed(
            RawToolDelta(
                call_index=0,
                id="call_x",
                name_delta="ping",
                args_delta='{"host": "localhost"}',
                done=True,
            )
        )
        assert len(result) == 1
        assert result[0].arguments == {"host": "localhost"}

    def test_missing_id_gets_unique_id(self):
        first = ToolCallAssembler().feed(
            RawToolDelta(call_index=3, name_delta="echo", args_delta="{}")
        )
        second = ToolCallAssembler().feed(
            RawToolDelta(call_index=3, name_delta="echo", args_delta="{}")
        )
        assert first[0].id.startswith("tc_3_")
        assert first[0].id != second[0].id

    def test_args_before_name_wait_for_name(self):
        asm = ToolCallAssembler()
        assert asm.feed(RawToolDelta(call_index=0, args_delta='{"a": 1}')) == []
        result = asm.feed(RawToolDelta(call_index=0, name_delta="late"))
        assert [c.name for c in result] == ["late"]


class TestFiresExactlyOnce:
    @pytest.mark.parametrize("n", [1, 2, 3, 5, 8, 13])
    def test_fires_after_last_fragment(self, n):
        args = json.dumps({"queries": ["alpha beta", "gamma"], "nested": {"k": [1, 2, {"z": "}"}]}})
        size = -(-len(args) // n)
        fragments = [args[i : i + size] for i in range(0, len(args), size)]

        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="c0", name_delta="multi_source_search"))
        fired = []
        for i, fragment in enumerate(fragments):
            out = asm.feed(RawToolDelta(call_index=0, args_delta=fragment))
            if i < len(fragments) - 1:
                assert out == [], f"fired early after fragment {i + 1}/{len(fragments)}"
            fired.extend(out)

        assert len(fired) == 1
        assert fired[0].arguments == json.loads(args)
        # Anything arriving later for the same index never fires again.
        assert asm.feed(RawToolDelta(call_index=0, args_delta=" ")) == []
        assert asm.flush() == []


class TestMultipleToolCalls:
    def test_two_interleaved_calls(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="c0", name_delta="alpha"))
        asm.feed(RawToolDelta(call_index=1, id="c1", name_delta="beta"))

        r1 = asm.feed(RawToolDelta(call_index=1, args_delta='{"y": 2}'))
        r0 = asm.feed(RawToolDelta(call_index=0, args_delta='{"x": 1}'))

        assert [c.name for c in r1] == ["beta"]
        assert [c.name for c in r0] == ["alpha"]
        assert not asm.pending


class TestFlushAndErrors:
    def test_flush_finalises_empty_arguments(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="c", name_delta="list_all"))
        assert asm.pending
        calls = asm.flush()
        assert len(calls) == 1
        assert calls[0].arguments == {}

    def test_malformed_arguments_record_error(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="bad", name_delta="broken"))
        asm.feed(RawToolDelta(call_index=0, args_delta='{"key": INVALID_JSON'))
        assert asm.feed(RawToolDelta(call_index=0, done=True)) == []
        assert len(asm.errors) == 1
        assert "tool_call_json_parse_failed" in asm.errors[0]
        assert not asm.pending

    def test_non_object_arguments_are_incomplete(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, name_delta="x", args_delta="[1, 2]"))
        assert asm.flush() == []
        assert "tool_call_incomplete" in asm.errors[0]

    def test_reset_clears_state(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, name_delta="x", args_delta="{}"))
        asm.feed(RawToolDelta(call_index=1, name_delta="y", args_delta="{"))
        asm.reset()
        assert not asm.pending
        assert asm.errors == []
        assert len(asm.feed(RawToolDelta(call_index=0, name_delta="x", args_delta="{}"))) == 1
