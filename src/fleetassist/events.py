"""Events produced while decoding a chat stream and running a turn."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class StreamEvent:
    """Base for all streaming events."""


@dataclass
class ContentDelta(StreamEvent):
    """A fragment of assistant text."""

    content: str = ""


@dataclass
class ToolCallDelta(StreamEvent):
    """A fragment of a tool call.

    Fields other than ``index`` are empty on continuation fragments.
    """

    index: int = 0
    call_id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class StreamEnd(StreamEvent):
    """The backend sent its ``[DONE]`` sentinel."""


@dataclass
class RunItemEvent(StreamEvent):
    """A discrete step in the conversation loop.

    ``name`` values: ``"tool_call"``, ``"tool_result"``,
    ``"message"``, ``"notification"``.
    """

    name: str = ""
    data: dict = field(default_factory=dict)


@dataclass
class RunCompleteEvent(StreamEvent):
    """Final event of a turn; always the last event yielded."""

    result: Any = None
