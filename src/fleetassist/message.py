from enum import Enum
from pydantic import BaseModel, field_serializer

from fleetassist.streaming import ToolCall


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


class Message(BaseModel):
    role: MessageRole
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    @field_serializer("tool_calls")
    def serialize_tool_calls(self, tool_calls: list[ToolCall] | None) -> list[dict] | None:
        if tool_calls is None:
            return None
        return [
            {
                "id": t.id,
                "type": "function",
                "function": {
                    "arguments": t.arguments,
                    "name": t.name
                }
            }
            for t in tool_calls
        ]

    def to_wire(self) -> dict:
        """Chat-completion message dict, omitting absent fields."""
        return self.model_dump(exclude_none=True)
