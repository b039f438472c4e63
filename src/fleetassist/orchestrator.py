import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fleetassist.config import Settings
from fleetassist.context import Context
from fleetassist.conversation import Conversation
from fleetassist.errors import (
    ConversationBusyError,
    RecursionLimitExceeded,
    TransportError,
    TurnCancelled,
)
from fleetassist.events import (
    ContentDelta,
    RunCompleteEvent,
    RunItemEvent,
    StreamEvent,
    ToolCallDelta,
)
from fleetassist.instrumentation import completion_span, conversation_span, record_error
from fleetassist.message import Message
from fleetassist.provider import FAILURE_MESSAGE, ChatProvider, HttpChatProvider
from fleetassist.sse import FrameDecoder
from fleetassist.state import SessionState
from fleetassist.streaming import ToolCallAccumulator
from fleetassist.tools import ToolRegistry

logger = logging.getLogger(__name__)


class OrchestratorState(Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    TOOL_EXECUTING = "tool_executing"
    ERRORED = "errored"


@dataclass
class Notification:
    """A condition the UI should show the user.

    ``kind`` is one of ``"rate_limited"``, ``"payment_required"``,
    ``"failed"`` or ``"recursion_limit"``.
    """

    kind: str
    message: str


@dataclass
class TurnResult:
    """The result of one user turn.

    ``status`` is ``"completed"``, ``"cancelled"``, or the ``kind`` of the
    notification that ended the turn.
    """

    status: str
    last_message: Message | None = None
    notification: Notification | None = None
    turns: int = 0


async def _next_chunk(stream: AsyncIterator[bytes]) -> bytes | None:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return None


class ConversationOrchestrator:
    """Drives a conversation with a streaming, tool-calling chat backend.

    Each user turn appends the user message, streams the backend's answer
    into a live assistant message, runs any requested tool calls through
    the registry, appends their results and asks the backend to continue,
    until a response requests no tools.

    ``submit_user_turn()`` drains ``iter()``. ``iter()`` is the streaming
    entry point.

    Failed requests roll the conversation back to where it was before the
    user message. A cancelled turn keeps the partial assistant answer and
    drops tool calls that never got results.

    Args:
        provider: Source of the backend's response bytes.
        registry: Tools the backend may call.
        conversation: Message log to continue; a new one when omitted.
        session: Session-scoped state shared by tool calls.
        max_turns: Maximum backend requests per user turn. Running out
            moves the orchestrator to ``ERRORED`` until ``clear()``.
    """

    def __init__(
        self,
        provider: ChatProvider,
        registry: ToolRegistry | None = None,
        conversation: Conversation | None = None,
        session: SessionState | None = None,
        max_turns: int = 10,
    ):
        self.provider = provider
        self.registry = registry if registry is not None else ToolRegistry()
        self.conversation = conversation if conversation is not None else Conversation()
        self.session = session if session is not None else SessionState()
        self.max_turns = max_turns
        self.state = OrchestratorState.IDLE
        self.current_route = ""
        self.context = Context(conversation=self.conversation, state=self.session)

        self._cancel = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        registry: ToolRegistry | None = None,
        session: SessionState | None = None,
    ) -> "ConversationOrchestrator":
        if registry is None:
            registry = ToolRegistry()
        registry.parallel = settings.parallel_tool_calls
        return cls(
            provider=HttpChatProvider.from_settings(settings),
            registry=registry,
            session=session,
            max_turns=settings.max_turns,
        )

    @property
    def busy(self) -> bool:
        return self.state not in (OrchestratorState.IDLE, OrchestratorState.ERRORED)

    async def submit_user_turn(self, text: str, current_route: str = "") -> TurnResult:
        """Run one user turn to completion and return its result."""
        result: TurnResult | None = None
        async for event in self.iter(text, current_route):
            if isinstance(event, RunCompleteEvent):
                result = event.result
        if result is None:
            raise RuntimeError("iter() ended without emitting RunCompleteEvent")
        return result

    async def iter(self, text: str, current_route: str = "") -> AsyncIterator[StreamEvent]:
        """Run one user turn, yielding events as execution proceeds.

        Raises:
            ConversationBusyError: If the orchestrator is not idle.
        """
        if self.state is not OrchestratorState.IDLE:
            raise ConversationBusyError(f"Cannot start a turn while {self.state.value}")

        self._cancel.clear()
        self._idle.clear()
        self.current_route = current_route
        checkpoint = len(self.conversation)
        self.conversation.append_user(text)
        self.state = OrchestratorState.SENDING
        final_state = OrchestratorState.IDLE
        result: TurnResult | None = None

        try:
            async with conversation_span(self.conversation.conversation_id, current_route) as span:
                turn = 0
                try:
                    while True:
                        turn += 1
                        if turn > self.max_turns:
                            raise RecursionLimitExceeded(
                                f"Stopped after {self.max_turns} consecutive requests without a final answer."
                            )
                        self.state = OrchestratorState.SENDING
                        acc = ToolCallAccumulator()
                        async for event in self._stream_response(turn, acc):
                            yield event

                        calls = acc.finalize()
                        if not calls:
                            msg = self.conversation.end_assistant()
                            yield RunItemEvent(name="message", data={
                                "content": msg.content if msg else "",
                            })
                            result = TurnResult(status="completed", last_message=msg, turns=turn)
                            break

                        self.state = OrchestratorState.TOOL_EXECUTING
                        self.conversation.attach_tool_calls(calls)
                        for tc in calls:
                            yield RunItemEvent(name="tool_call", data={
                                "tool_name": tc.name, "call_id": tc.id,
                                "arguments": tc.arguments,
                            })
                        results = await self._until_cancelled(
                            self.registry.dispatch_all(calls, self.context)
                        )
                        self.conversation.append_tool_results(results)
                        for tc, tool_result in zip(calls, results):
                            yield RunItemEvent(name="tool_result", data={
                                "tool_name": tc.name, "call_id": tool_result.tool_call_id,
                                "success": tool_result.success, "payload": tool_result.payload,
                            })

                except (TransportError, OSError) as e:
                    record_error(span, e)
                    self.conversation.truncate(checkpoint)
                    if isinstance(e, TransportError):
                        notification = Notification(kind=e.notification, message=str(e))
                    else:
                        notification = Notification(kind="failed", message=FAILURE_MESSAGE)
                    logger.warning(f"Turn rolled back ({notification.kind}): {e}")
                    yield RunItemEvent(name="notification", data={
                        "kind": notification.kind, "message": notification.message,
                    })
                    result = TurnResult(status=notification.kind, notification=notification, turns=turn)

                except RecursionLimitExceeded as e:
                    record_error(span, e)
                    logger.error(str(e))
                    final_state = OrchestratorState.ERRORED
                    notification = Notification(kind="recursion_limit", message=str(e))
                    yield RunItemEvent(name="notification", data={
                        "kind": notification.kind, "message": notification.message,
                    })
                    last = self.conversation.messages[-1] if self.conversation.messages else None
                    result = TurnResult(
                        status="recursion_limit", last_message=last,
                        notification=notification, turns=self.max_turns,
                    )

                except TurnCancelled:
                    logger.info("Turn cancelled")
                    kept = self.conversation.abandon_assistant()
                    result = TurnResult(status="cancelled", last_message=kept, turns=turn)

                except Exception as e:
                    record_error(span, e)
                    self.conversation.truncate(checkpoint)
                    notification = Notification(kind="failed", message=FAILURE_MESSAGE)
                    logger.exception(f"Turn rolled back after unexpected error: {e}")
                    yield RunItemEvent(name="notification", data={
                        "kind": notification.kind, "message": notification.message,
                    })
                    result = TurnResult(status="failed", notification=notification, turns=turn)
        finally:
            if result is None:
                # interrupted from outside: task cancellation or an abandoned iterator
                self.conversation.abandon_assistant()
            self.state = final_state
            self._idle.set()

        yield RunCompleteEvent(result=result)

    def cancel(self) -> bool:
        """Ask the running turn to stop. Returns False when nothing is running."""
        if not self.busy:
            return False
        self._cancel.set()
        return True

    async def clear(self) -> None:
        """Stop any running turn, then empty the conversation and session state."""
        if self.busy:
            self.cancel()
            await self._idle.wait()
        self.conversation.clear()
        self.session.reset()
        self.state = OrchestratorState.IDLE

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _stream_response(self, turn: int, acc: ToolCallAccumulator) -> AsyncIterator[StreamEvent]:
        messages = [m.to_wire() for m in self.conversation.messages]
        tools = self.registry.schemas() or None
        decoder = FrameDecoder()
        stream = self.provider.stream(messages, self.current_route, tools)

        async with completion_span(self.provider.endpoint, turn) as span:
            try:
                while not decoder.done:
                    chunk = await self._until_cancelled(_next_chunk(stream))
                    if chunk is None:
                        for event in self._route(decoder.flush(), acc):
                            yield event
                        break
                    self.state = OrchestratorState.STREAMING
                    for event in self._route(decoder.feed(chunk), acc):
                        yield event
            except TransportError as e:
                record_error(span, e)
                raise
            finally:
                await stream.aclose()

        logger.debug(f"Request {turn} finished with {len(acc)} tool call(s)")

    def _route(self, events: Iterable[StreamEvent], acc: ToolCallAccumulator) -> Iterator[StreamEvent]:
        for event in events:
            if isinstance(event, ContentDelta):
                self.conversation.append_assistant_delta(event.content)
                yield event
            elif isinstance(event, ToolCallDelta):
                acc.apply(event)

    async def _until_cancelled(self, awaitable: Awaitable[Any]) -> Any:
        """Await ``awaitable`` unless ``cancel()`` is called first.

        Raises:
            TurnCancelled: If the cancellation token fired first.
        """
        task = asyncio.ensure_future(awaitable)
        if self._cancel.is_set():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise TurnCancelled()

        waiter = asyncio.ensure_future(self._cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise TurnCancelled()
