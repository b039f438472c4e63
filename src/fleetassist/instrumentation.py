"""OpenTelemetry spans for conversation turns, backend requests and tools.

Tracing is off until ``instrument()`` is called. Without it every span
helper yields ``None`` and nothing from ``opentelemetry`` is imported.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "fleetassist") -> None:
    """Start emitting spans through the global OpenTelemetry tracer provider.

    Install the extra with ``pip install fleetassist[otel]`` and register a
    provider before calling this, otherwise spans go to a no-op tracer::

        trace.set_tracer_provider(TracerProvider())
        instrument()
        orchestrator = ConversationOrchestrator.from_settings(Settings.from_env())

    Raises:
        ImportError: ``opentelemetry-api`` is missing.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "Tracing needs opentelemetry-api; run: pip install fleetassist[otel]"
        )
    from opentelemetry import trace

    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info("No TracerProvider configured; fleetassist spans are dropped")
    else:
        logger.info(f"Tracing enabled with tracer '{tracer_name}'")


def uninstrument() -> None:
    """Stop emitting spans."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def _span(name: str, attributes: dict, client: bool = False):
    if _tracer is None:
        yield None
        return
    kwargs = {}
    if client:
        from opentelemetry.trace import SpanKind

        kwargs["kind"] = SpanKind.CLIENT
    with _tracer.start_as_current_span(name, **kwargs, attributes=attributes) as span:
        yield span


def conversation_span(conversation_id: str, route: str):
    """Span covering a user turn and every continuation request it makes."""
    return _span("conversation_turn", {
        "gen_ai.operation.name": "invoke_agent",
        "gen_ai.conversation.id": conversation_id,
        "fleetassist.route": route,
    })


def completion_span(endpoint: str, turn: int):
    """Client span for one streamed request; ``turn`` counts from 1."""
    return _span("chat", {
        "gen_ai.operation.name": "chat",
        "server.address": endpoint,
        "fleetassist.turn": turn,
    }, client=True)


def tool_span(tool_name: str, call_id: str):
    return _span(f"execute_tool {tool_name}", {
        "gen_ai.operation.name": "execute_tool",
        "gen_ai.tool.name": tool_name,
        "gen_ai.tool.call.id": call_id,
    })


def record_error(span, exception: BaseException) -> None:
    """Mark ``span`` failed with ``exception``. ``span`` may be ``None``."""
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.record_exception(exception)
    span.set_status(StatusCode.ERROR, str(exception))
    span.set_attribute("error.type", type(exception).__qualname__)
