import uuid

from pydantic import BaseModel, Field, PrivateAttr

from fleetassist.message import Message, MessageRole
from fleetassist.streaming import ToolCall


class Conversation(BaseModel):
    """Ordered message log for one chat session.

    Only the orchestrator mutates a conversation, through the methods
    below. Within a request, assistant text accumulates on a single live
    assistant message that is created by the first delta and extended
    in place afterwards.
    """

    conversation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    messages: list[Message] = Field(default_factory=list)

    _live: Message | None = PrivateAttr(default=None)

    def __len__(self) -> int:
        return len(self.messages)

    def append_user(self, content: str) -> Message:
        msg = Message(role=MessageRole.USER, content=content)
        self.messages.append(msg)
        return msg

    def append_assistant_delta(self, content: str) -> Message:
        msg = self._live_message()
        msg.content += content
        return msg

    def attach_tool_calls(self, tool_calls: list[ToolCall]) -> Message:
        """Record the tool calls requested by the live assistant message."""
        msg = self._live_message()
        msg.tool_calls = list(tool_calls)
        return msg

    def append_tool_results(self, results) -> list[Message]:
        """Append one ``tool`` message per result and close the live message."""
        appended = [r.to_message() for r in results]
        self.messages.extend(appended)
        self._live = None
        return appended

    def end_assistant(self) -> Message | None:
        """Close the live assistant message and return it."""
        msg, self._live = self._live, None
        return msg

    def abandon_assistant(self) -> Message | None:
        """Settle a live message whose request was interrupted.

        Unanswered tool calls are stripped; a message left with no content
        is removed entirely. Returns the retained message, if any.
        """
        msg, self._live = self._live, None
        if msg is None:
            return None
        msg.tool_calls = None
        if not msg.content:
            self._remove(msg)
            return None
        return msg

    def truncate(self, length: int) -> None:
        """Drop every message after the first ``length``."""
        del self.messages[length:]
        if self._live is not None and not any(m is self._live for m in self.messages):
            self._live = None

    def clear(self) -> None:
        self.messages.clear()
        self._live = None

    def _remove(self, msg: Message) -> None:
        for i, m in enumerate(self.messages):
            if m is msg:
                del self.messages[i]
                return

    def _live_message(self) -> Message:
        if self._live is None:
            self._live = Message(role=MessageRole.ASSISTANT, content="")
            self.messages.append(self._live)
        return self._live
