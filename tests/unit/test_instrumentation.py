import logging
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.trace import SpanKind, StatusCode

import fleetassist.instrumentation as instrumentation
from fleetassist.instrumentation import (
    completion_span,
    conversation_span,
    record_error,
    tool_span,
    uninstrument,
)


class NoOpTracer:
    pass


@pytest.fixture(autouse=True)
def no_tracer():
    instrumentation._tracer = None
    yield
    instrumentation._tracer = None


@pytest.fixture
def fake_trace_module():
    """A stand-in ``opentelemetry.trace`` visible to ``instrument()``."""
    trace = MagicMock()
    trace.NoOpTracer = NoOpTracer
    modules = {"opentelemetry": MagicMock(trace=trace), "opentelemetry.trace": trace}
    with patch("importlib.util.find_spec", return_value=MagicMock()), \
            patch.dict("sys.modules", modules):
        yield trace


@pytest.fixture
def tracer():
    span = MagicMock(name="span")
    tracer = MagicMock(name="tracer")
    tracer.start_as_current_span.return_value.__enter__.return_value = span
    tracer.start_as_current_span.return_value.__exit__.return_value = False
    tracer.span = span
    instrumentation._tracer = tracer
    return tracer


class TestEnableDisable:
    def test_missing_package_names_the_extra(self):
        with patch("importlib.util.find_spec", return_value=None):
            with pytest.raises(ImportError, match="pip install"):
                instrumentation.instrument()
        assert instrumentation._tracer is None

    def test_tracer_taken_from_global_provider(self, fake_trace_module):
        instrumentation.instrument()

        fake_trace_module.get_tracer.assert_called_once_with("fleetassist")
        assert instrumentation._tracer is fake_trace_module.get_tracer.return_value

    def test_custom_tracer_name(self, fake_trace_module):
        instrumentation.instrument(tracer_name="desk")
        fake_trace_module.get_tracer.assert_called_once_with("desk")

    def test_warns_when_no_provider_registered(self, fake_trace_module, caplog):
        fake_trace_module.get_tracer.return_value = NoOpTracer()

        with caplog.at_level(logging.INFO, logger="fleetassist.instrumentation"):
            instrumentation.instrument()

        assert "No TracerProvider configured" in caplog.text

    def test_uninstrument_drops_tracer(self, tracer):
        uninstrument()
        assert instrumentation._tracer is None


@pytest.mark.asyncio
@pytest.mark.parametrize("open_span", [
    lambda: conversation_span("conv-1", "/reservations/new"),
    lambda: completion_span("https://chat.example", 1),
    lambda: tool_span("echo", "call_1"),
], ids=["turn", "request", "tool"])
async def test_disabled_helpers_yield_none(open_span):
    async with open_span() as span:
        assert span is None


class TestSpanAttributes:
    @pytest.mark.asyncio
    async def test_turn(self, tracer):
        async with conversation_span("conv-7", "/fleet") as span:
            assert span is tracer.span

        tracer.start_as_current_span.assert_called_once_with(
            "conversation_turn",
            attributes={
                "gen_ai.operation.name": "invoke_agent",
                "gen_ai.conversation.id": "conv-7",
                "fleetassist.route": "/fleet",
            },
        )

    @pytest.mark.asyncio
    async def test_request_is_client_kind(self, tracer):
        async with completion_span("https://chat.example", 3):
            pass

        tracer.start_as_current_span.assert_called_once_with(
            "chat",
            kind=SpanKind.CLIENT,
            attributes={
                "gen_ai.operation.name": "chat",
                "server.address": "https://chat.example",
                "fleetassist.turn": 3,
            },
        )

    @pytest.mark.asyncio
    async def test_tool_named_after_tool(self, tracer):
        async with tool_span("create_quick_booking", "call_9"):
            pass

        tracer.start_as_current_span.assert_called_once_with(
            "execute_tool create_quick_booking",
            attributes={
                "gen_ai.operation.name": "execute_tool",
                "gen_ai.tool.name": "create_quick_booking",
                "gen_ai.tool.call.id": "call_9",
            },
        )


def test_record_error_marks_span():
    span = MagicMock()
    error = ConnectionResetError("reset by peer")

    record_error(span, error)

    span.record_exception.assert_called_once_with(error)
    span.set_status.assert_called_once_with(StatusCode.ERROR, "reset by peer")
    span.set_attribute.assert_called_once_with("error.type", "ConnectionResetError")


def test_record_error_without_span():
    assert record_error(None, ValueError("x")) is None
