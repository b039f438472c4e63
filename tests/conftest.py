import asyncio
import json

import pytest

from fleetassist.booking import BookingCapability, CustomerDirectory, CustomerMatch
from fleetassist.orchestrator import ConversationOrchestrator
from fleetassist.provider import ChatProvider
from fleetassist.tools import ToolRegistry, tool


# ---------------------------------------------------------------------------
# Wire-format builders (mirror the backend's event stream)
# ---------------------------------------------------------------------------

def frame(delta: dict) -> str:
    """One ``data:`` line carrying ``delta``."""
    return f"data: {json.dumps({'choices': [{'delta': delta}]}, ensure_ascii=False)}\n"


def content_frame(text: str) -> str:
    return frame({"content": text})


def tool_call_frame(
    index: int = 0,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> str:
    entry: dict = {"index": index}
    if call_id is not None:
        entry["id"] = call_id
    function = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    if function:
        entry["function"] = function
    return frame({"tool_calls": [entry]})


DONE = "data: [DONE]\n"


def split_bytes(body: str, size: int) -> list[bytes]:
    data = body.encode()
    return [data[i:i + size] for i in range(0, len(data), size)]


def make_text_stream(text: str, chunk_size: int = 7) -> list[bytes]:
    """Streamed text reply, one content frame per word."""
    words = text.split(" ")
    parts = [w if i == len(words) - 1 else w + " " for i, w in enumerate(words)]
    body = "".join(content_frame(p) for p in parts) + DONE
    return split_bytes(body, chunk_size)


def make_tool_call_stream(
    name: str,
    args: dict,
    call_id: str = "call_1",
    chunk_size: int = 5,
) -> list[bytes]:
    """Streamed single tool call whose arguments arrive in two fragments."""
    arguments = json.dumps(args)
    half = len(arguments) // 2
    body = (
        tool_call_frame(0, call_id=call_id, name=name, arguments=arguments[:half])
        + tool_call_frame(0, arguments=arguments[half:])
        + DONE
    )
    return split_bytes(body, chunk_size)


def make_multi_tool_call_stream(calls: list[tuple[str, dict, str]]) -> list[bytes]:
    """Streamed tool calls, one per ``(name, args, call_id)``."""
    body = "".join(
        tool_call_frame(i, call_id=call_id, name=name, arguments=json.dumps(args))
        for i, (name, args, call_id) in enumerate(calls)
    ) + DONE
    return split_bytes(body, 11)


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------

class MockProvider(ChatProvider):
    """Provider that replays pre-queued responses. No network calls.

    Each queued response is a list of byte chunks, or an exception to
    raise instead of streaming. An exception placed inside the chunk
    list is raised mid-stream.
    """

    endpoint = "mock://chat"

    def __init__(self):
        self.responses: list = []
        self.call_log: list[dict] = []

    async def stream(self, messages, current_route="", tools=None):
        self.call_log.append({
            "messages": messages, "current_route": current_route, "tools": tools,
        })
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        for chunk in response:
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk


class BlockingProvider(MockProvider):
    """Streams the first chunks of a response, then blocks until released."""

    def __init__(self):
        super().__init__()
        self.blocked = asyncio.Event()
        self.release = asyncio.Event()

    async def stream(self, messages, current_route="", tools=None):
        self.call_log.append({"messages": messages})
        for chunk in self.responses.pop(0):
            yield chunk
        self.blocked.set()
        await self.release.wait()
        yield DONE.encode()


# ---------------------------------------------------------------------------
# Customer directory double
# ---------------------------------------------------------------------------

class FakeDirectory(CustomerDirectory):
    def __init__(self, matches: list[CustomerMatch] | None = None):
        self.matches = matches or []
        self.queries: list[str] = []

    async def search_by_name(self, name: str) -> list[CustomerMatch]:
        self.queries.append(name)
        return list(self.matches)


def customer(id: str, name: str, score: float) -> CustomerMatch:
    slug = name.lower().replace(" ", ".")
    return CustomerMatch(
        id=id, full_name=name, phone=f"050-000-{id[-4:]}",
        email=f"{slug}@example.com", match_score=score,
    )


@tool
def echo(text: str):
    """Echo text back."""
    return {"echo": text}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def directory():
    return FakeDirectory([customer("cust-0001", "Ali Hassan", 96)])


@pytest.fixture
def booking_updates():
    return []


@pytest.fixture
def booking_capability(directory, booking_updates):
    return BookingCapability(directory, on_booking_update=booking_updates.append)


@pytest.fixture
def make_orchestrator(mock_provider, booking_capability):
    """Factory fixture building an orchestrator over the mock provider.

    Booking tools and ``echo`` are registered unless ``tools`` is given.
    """
    def _make(provider=None, tools=None, max_turns=10, parallel=True):
        registry = ToolRegistry(parallel=parallel)
        if tools is None:
            registry.add_capability(booking_capability)
            registry.register("echo", echo)
        else:
            for t in tools:
                registry.register(t.name, t)
        return ConversationOrchestrator(
            provider=provider or mock_provider,
            registry=registry,
            max_turns=max_turns,
        )
    return _make
