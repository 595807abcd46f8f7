"""Tests for mooncow.llm.segmenter.ThinkSegmenter."""

from __future__ import annotations

import pytest

from mooncow.llm.events import AnswerEvent, ThoughtEvent
from mooncow.llm.segmenter import ThinkSegmenter, segment_text


def _run(chunks: list[str]) -> list:
    seg = ThinkSegmenter()
    events = []
    for chunk in chunks:
        events.extend(seg.feed(chunk))
    events.extend(seg.finish())
    return events


def _thought(events) -> str:
    return "".join(e.text for e in events if isinstance(e, ThoughtEvent))


def _answer(events) -> str:
    return "".join(e.text for e in events if isinstance(e, AnswerEvent))


def _chunked(text: str, size: int) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


class TestSplitTags:
    def test_open_tag_split_mid_tag(self):
        events = _run(["<thi", "nk>reasoning</think>final answer"])
        assert events == [ThoughtEvent("reasoning"), AnswerEvent("final answer")]

    def test_partial_tag_is_not_emitted_early(self):
        seg = ThinkSegmenter()
        assert seg.feed("<thi") == []
        assert seg.carry == "<thi"

    def test_close_tag_split_across_three_chunks(self):
        events = _run(["<think>abc</", "thi", "nk>answer"])
        assert _thought(events) == "abc"
        assert _answer(events) == "answer"

    def test_lone_angle_bracket_released_by_next_delta(self):
        events = _run(["<think>x</think>a <", "b"])
        assert _answer(events) == "a <b"


class TestModes:
    def test_untagged_leading_text_is_thought(self):
        events = _run(["plain text with no tags"])
        assert events == [ThoughtEvent("plain text with no tags")]

    def test_close_without_open_switches_to_answer(self):
        events = _run(["musing</think>the answer"])
        assert events == [ThoughtEvent("musing"), AnswerEvent("the answer")]

    def test_duplicate_open_is_idempotent(self):
        events = _run(["<think>a<think>b</think>c"])
        assert _thought(events) == "ab"
        assert _answer(events) == "c"

    def test_reopened_thought_after_answer(self):
        events = _run(["<think>a</think>b<think>c</think>d"])
        assert _thought(events) == "ac"
        assert _answer(events) == "bd"


class TestFinish:
    def test_carry_flushed_in_current_mode(self):
        seg = ThinkSegmenter()
        assert seg.feed("<think>t</think>answer <thi") == [ThoughtEvent("t"), AnswerEvent("answer ")]
        assert seg.finish() == [AnswerEvent("<thi")]

    def test_finish_without_carry(self):
        seg = ThinkSegmenter()
        seg.feed("<think>x</think>y")
        assert seg.finish() == []

    def test_custom_tags(self):
        events = segment_text("[r]why[/r]what", "[r]", "[/r]")
        assert events == [ThoughtEvent("why"), AnswerEvent("what")]

    def test_empty_tags_rejected(self):
        with pytest.raises(ValueError):
            ThinkSegmenter("", "</think>")


SAMPLES = [
    "<think>reasoning</think>final answer",
    "pre<think>abc</think>ans <b>x</b> </thi end",
    "a</think>b<think>c<think>d</think>e<thi",
    "no tags at all, just < and > characters",
    "<think></think><think>empty spans</think>",
]


class TestProperties:
    @pytest.mark.parametrize("text", SAMPLES)
    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7])
    def test_chunking_does_not_change_output(self, text, size):
        whole = _run([text])
        pieces = _run(_chunked(text, size))
        assert _thought(pieces) == _thought(whole)
        assert _answer(pieces) == _answer(whole)

    @pytest.mark.parametrize("text", SAMPLES)
    @pytest.mark.parametrize("size", [1, 4])
    def test_no_character_loss(self, text, size):
        events = _run(_chunked(text, size))
        emitted = "".join(e.text for e in events)
        assert emitted == text.replace("<think>", "").replace("</think>", "")
