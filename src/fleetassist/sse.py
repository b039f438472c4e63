"""Decoder for the chat backend's ``data:`` event stream.

The backend frames its response as newline-delimited ``data: <json>``
records terminated by ``data: [DONE]``. Network chunks may split a line,
a JSON payload or a multi-byte character anywhere, so the decoder keeps
the unterminated tail and a queue of complete lines between calls.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections import deque
from typing import Any

from openai.types.chat.chat_completion_chunk import ChoiceDelta
from pydantic import ValidationError

from fleetassist.errors import FrameParseError
from fleetassist.events import ContentDelta, StreamEnd, StreamEvent, ToolCallDelta

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class FrameDecoder:
    """Turns arbitrarily chunked bytes into :class:`StreamEvent` objects.

    ``feed()`` only processes complete lines. A line whose JSON does not
    parse stays at the head of the queue and stops processing for that
    call; it is retried on the next ``feed()``. ``flush()`` treats the
    tail as a complete line and drops anything still unparseable.

    Example::

        decoder = FrameDecoder()
        async for chunk in response.aiter_bytes():
            for event in decoder.feed(chunk):
                ...
        for event in decoder.flush():
            ...
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._tail = ""
        self._lines: deque[str] = deque()
        self.done = False

    def feed(self, data: bytes) -> list[StreamEvent]:
        if self.done:
            return []
        self._buffer(self._decoder.decode(data))
        return self._drain(final=False)

    def flush(self) -> list[StreamEvent]:
        """Process whatever is left once the connection has closed."""
        if self.done:
            return []
        self._buffer(self._decoder.decode(b"", final=True))
        if self._tail:
            self._lines.append(self._tail)
            self._tail = ""
        return self._drain(final=True)

    def _buffer(self, text: str) -> None:
        if not text:
            return
        parts = (self._tail + text).split("\n")
        self._tail = parts.pop()
        self._lines.extend(parts)

    def _drain(self, final: bool) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        while self._lines:
            line = self._lines[0]
            try:
                frame_events = _parse_line(line)
            except FrameParseError as e:
                if not final:
                    logger.debug(f"Re-buffering incomplete frame: {e}")
                    break
                logger.warning(f"Dropping unparseable frame at end of stream: {e}")
                self._lines.popleft()
                continue
            self._lines.popleft()
            for event in frame_events:
                events.append(event)
                if isinstance(event, StreamEnd):
                    self._finish()
                    return events
        return events

    def _finish(self) -> None:
        self.done = True
        self._lines.clear()
        self._tail = ""


def _parse_line(line: str) -> list[StreamEvent]:
    if line.endswith("\r"):
        line = line[:-1]
    if not line or line.startswith(":"):
        return []
    if not line.startswith(DATA_PREFIX):
        return []

    payload = line[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return [StreamEnd()]
    try:
        record = json.loads(payload)
    except json.JSONDecodeError as e:
        raise FrameParseError(f"{e.msg} in {payload[:80]!r}") from e
    return _record_events(record)


def _record_events(record: Any) -> list[StreamEvent]:
    """Translate one chunk record into content and tool-call deltas."""
    if not isinstance(record, dict):
        return []
    choices = record.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return []
    raw_delta = choices[0].get("delta") or {}
    if not isinstance(raw_delta, dict):
        return []
    tool_calls = raw_delta.get("tool_calls")
    if tool_calls is not None and not isinstance(tool_calls, list):
        logger.warning("Skipping delta whose tool_calls is not a list")
        return []
    for entry in tool_calls or []:
        if isinstance(entry, dict) and entry.get("index") is None:
            entry["index"] = 0

    try:
        delta = ChoiceDelta.model_validate(raw_delta)
    except ValidationError as e:
        logger.warning(f"Skipping malformed delta: {e.error_count()} validation errors")
        return []

    events: list[StreamEvent] = []
    if delta.content:
        events.append(ContentDelta(content=delta.content))
    for tc in delta.tool_calls or []:
        fn = tc.function
        events.append(ToolCallDelta(
            index=tc.index,
            call_id=tc.id or "",
            name=(fn.name if fn else None) or "",
            arguments=(fn.arguments if fn else None) or "",
        ))
    return events
