"""
Assembles streaming tool-call deltas into complete ToolCall objects.

Design goals:
  - Accumulate ``RawToolDelta`` fragments keyed by ``call_index``.
  - After every fragment, try to JSON-parse the accumulated argument string.
    A call fires the first time its name is known and its arguments parse;
    it never fires on incomplete JSON.
  - Each index fires at most once.  Fragments that arrive for an index after
    it fired are ignored.
  - ``flush()`` finalizes whatever is left at stream end.  Buffers whose
    arguments still do not parse are dropped and an error is recorded in
    ``self.errors``.
"""

from __future__ import annotations

import json
import logging
import uuid

from mooncow.llm.types import RawToolDelta, ToolCall

logger = logging.getLogger(__name__)


class ToolCallAssembler:
    """Buffers raw tool-call deltas and emits finished ``ToolCall`` objects."""

    def __init__(self) -> None:
        self._buf: dict[int, dict] = {}
        self._fired: set[int] = set()
        self.errors: list[str] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, delta: RawToolDelta) -> list[ToolCall]:
        """
        Feed a single ``RawToolDelta`` into the assembler.

        Returns a (possibly empty) list of completed ``ToolCall`` objects.
        """
        if delta.call_index in self._fired:
            return []

        buf = self._buf.setdefault(
            delta.call_index, {"id": None, "name": "", "args": ""}
        )

        if delta.id and not buf["id"]:
            buf["id"] = delta.id

        if delta.name_delta:
            buf["name"] += delta.name_delta

        if delta.args_delta:
            buf["args"] += delta.args_delta

        call = self._try_complete(delta.call_index)
        if call is not None:
            return [call]

        if delta.done:
            return self._finalize(delta.call_index)

        return []

    def flush(self) -> list[ToolCall]:
        """
        Finalize *all* remaining buffers.  Useful at stream end and for
        non-streamed responses, where a call may legitimately carry empty
        arguments.
        """
        calls: list[ToolCall] = []
        for idx in sorted(self._buf.keys()):
            calls.extend(self._finalize(idx))
        return calls

    @property
    def pending(self) -> bool:
        return bool(self._buf)

    def reset(self) -> None:
        """Discard all accumulated state."""
        self._buf.clear()
        self._fired.clear()
        self.errors.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _try_complete(self, idx: int) -> ToolCall | None:
        buf = self._buf[idx]
        if not buf["name"].strip() or not buf["args"].strip():
            return None
        try:
            args = json.loads(buf["args"])
        except ValueError:
            # Not a complete JSON document yet; keep accumulating.
            return None
        if not isinstance(args, dict):
            return None
        return self._emit(idx, args)

    def _finalize(self, idx: int) -> list[ToolCall]:
        buf = self._buf.get(idx)
        if buf is None:
            return []

        raw_args = buf["args"] or "{}"
        try:
            args = json.loads(raw_args)
        except ValueError as exc:
            self.errors.append(f"tool_call_json_parse_failed idx={idx} err={exc}")
            logger.warning(
                "Dropping tool call idx=%d name=%r: arguments are not valid JSON (%s)",
                idx,
                buf["name"],
                raw_args[:200],
            )
            del self._buf[idx]
            return []

        if not isinstance(args, dict) or not buf["name"].strip():
            self.errors.append(f"tool_call_incomplete idx={idx}")
            del self._buf[idx]
            return []

        return [self._emit(idx, args)]

    def _emit(self, idx: int, args: dict) -> ToolCall:
        buf = self._buf.pop(idx)
        self._fired.add(idx)
        call_id = buf["id"] or f"tc_{idx}_{uuid.uuid4().hex[:8]}"
        return ToolCall(id=call_id, name=buf["name"].strip(), arguments=args)
