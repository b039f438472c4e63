"""Reassembly of tool calls streamed as fragments.

The decoder yields :class:`~fleetassist.events.ToolCallDelta` events.
The :class:`ToolCallAccumulator` reassembles tool calls whose arguments
arrive in fragments across multiple chunks.
"""

from __future__ import annotations

from dataclasses import dataclass

from fleetassist.events import ToolCallDelta


@dataclass
class ToolCall:
    """A resolved tool call ready for the transcript."""

    id: str = ""
    name: str = ""
    arguments: str = ""


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments.

    Fragments are keyed by the backend-supplied ``index``. The first
    non-empty ``id`` and ``name`` seen for an index stick; arguments
    are concatenated in arrival order.
    """

    def __init__(self) -> None:
        self._pending: dict[int, ToolCall] = {}

    def apply(self, delta: ToolCallDelta) -> None:
        tc = self._pending.get(delta.index)
        if tc is None:
            self._pending[delta.index] = ToolCall(
                id=delta.call_id, name=delta.name, arguments=delta.arguments,
            )
            return
        if delta.call_id and not tc.id:
            tc.id = delta.call_id
        if delta.name and not tc.name:
            tc.name = delta.name
        tc.arguments += delta.arguments

    def __len__(self) -> int:
        return len(self._pending)

    def finalize(self) -> list[ToolCall]:
        """Return completed tool calls in index order.

        Indices the backend skipped leave no gap in the returned list.
        """
        calls = []
        for index in sorted(self._pending):
            tc = self._pending[index]
            if not tc.id:
                tc.id = f"call_{index}"
            calls.append(tc)
        return calls
