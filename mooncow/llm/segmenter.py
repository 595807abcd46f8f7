"""
Splits streamed assistant text into thought and answer spans.

The model wraps its reasoning in a pair of tags (``<think>`` … ``</think>``).
Deltas can cut a tag anywhere, so the segmenter holds back a trailing
fragment that could still grow into a tag (the *carry*) and only releases it
once the next delta disambiguates it, or when the stream ends.

Untagged text before the first close tag counts as thought.  Once a close tag
has been seen, untagged text counts as answer.
"""

from __future__ import annotations

import re

from mooncow.llm.events import AnswerEvent, ThoughtEvent

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

SegmentEvent = ThoughtEvent | AnswerEvent


def _partial_tag_pattern(*tags: str) -> re.Pattern[str]:
    """Regex matching an unterminated prefix of any of *tags* at buffer end."""
    prefixes = {tag[:i] for tag in tags for i in range(1, len(tag))}
    alternatives = sorted(prefixes, key=len, reverse=True)
    return re.compile("(?:" + "|".join(re.escape(p) for p in alternatives) + r")\Z")


class ThinkSegmenter:
    """
    Stateful thought/answer classifier for one stream.

    Create a fresh instance per stream, ``feed`` every text delta and call
    ``finish`` once at the end so a held-back carry is never lost.
    """

    def __init__(self, open_tag: str = THINK_OPEN, close_tag: str = THINK_CLOSE) -> None:
        if not open_tag or not close_tag:
            raise ValueError("open_tag and close_tag must be non-empty")
        self.open_tag = open_tag
        self.close_tag = close_tag
        self.in_thought = False
        self.thought_flushed = False
        self.carry = ""
        self._partial = _partial_tag_pattern(open_tag, close_tag)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, delta: str) -> list[SegmentEvent]:
        """Consume one delta and return the events it completes."""
        composite = self.carry + (delta or "")
        self.carry = ""
        match = self._partial.search(composite)
        if match:
            self.carry = composite[match.start():]
            composite = composite[: match.start()]
        return self._segments(composite)

    def finish(self) -> list[SegmentEvent]:
        """Flush any held-back carry as content of the current mode."""
        carry, self.carry = self.carry, ""
        if not carry:
            return []
        return [self._span(carry)]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _span(self, text: str) -> SegmentEvent:
        if self.in_thought or not self.thought_flushed:
            return ThoughtEvent(text)
        return AnswerEvent(text)

    def _segments(self, text: str) -> list[SegmentEvent]:
        events: list[SegmentEvent] = []
        remaining = text
        while remaining:
            open_idx = remaining.find(self.open_tag)
            close_idx = remaining.find(self.close_tag)
            if open_idx == -1 and close_idx == -1:
                events.append(self._span(remaining))
                break

            next_is_open = open_idx != -1 and (close_idx == -1 or open_idx < close_idx)
            idx = open_idx if next_is_open else close_idx
            tag = self.open_tag if next_is_open else self.close_tag

            before = remaining[:idx]
            if before:
                events.append(self._span(before))

            if next_is_open:
                self.in_thought = True
            else:
                self.in_thought = False
                self.thought_flushed = True
            remaining = remaining[idx + len(tag):]
        return events


def segment_text(
    text: str, open_tag: str = THINK_OPEN, close_tag: str = THINK_CLOSE
) -> list[SegmentEvent]:
    """Segment a complete response in one go."""
    segmenter = ThinkSegmenter(open_tag, close_tag)
    return segmenter.feed(text) + segmenter.finish()
