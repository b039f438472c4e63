from fleetassist.message import Message, MessageRole
from fleetassist.streaming import ToolCall


def test_tool_calls_serialize_to_function_format():
    msg = Message(
        role=MessageRole.ASSISTANT,
        tool_calls=[ToolCall(id="call_abc", name="search_customer_by_name", arguments='{"name": "Ali"}')],
    )
    assert msg.to_wire() == {
        "role": "assistant",
        "content": "",
        "tool_calls": [
            {
                "id": "call_abc",
                "type": "function",
                "function": {
                    "name": "search_customer_by_name",
                    "arguments": '{"name": "Ali"}',
                },
            }
        ],
    }


def test_plain_message_omits_absent_fields():
    assert Message(role=MessageRole.USER, content="hi").to_wire() == {
        "role": "user", "content": "hi",
    }


def test_tool_message_carries_call_id():
    msg = Message(role=MessageRole.TOOL, content='{"ok": true}', tool_call_id="call_1")
    assert msg.to_wire() == {
        "role": "tool", "content": '{"ok": true}', "tool_call_id": "call_1",
    }
