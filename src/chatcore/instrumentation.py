"""Optional OpenTelemetry instrumentation for chatcore.

Call ``chatcore.instrument()`` once at startup to enable tracing.
Requires ``opentelemetry-api`` to be installed; the client works
identically without it.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "chatcore") -> None:
    """Enable OpenTelemetry tracing for chat turns and model listing.

    Call once at startup, after configuring your TracerProvider.
    Requires ``opentelemetry-api``: ``pip install chatcore[otel]``

    Example::

        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import (
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )

        provider = TracerProvider()
        provider.add_span_processor(
            SimpleSpanProcessor(ConsoleSpanExporter())
        )
        trace.set_tracer_provider(provider)

        import chatcore
        chatcore.instrument()

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install chatcore[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured; chat spans will "
            "be discarded until one is set."
        )
    else:
        logger.info("chatcore instrumentation enabled")


def uninstrument() -> None:
    """Disable OpenTelemetry tracing."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def turn_span(model: str, turn_id: str):
    """Wrap one streamed chat turn in a ``chat`` span."""
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        f"chat {model or 'default'}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.request.model": model,
            "chatcore.turn.id": turn_id,
        },
    ) as span:
        yield span


@asynccontextmanager
async def models_span():
    """Wrap a model listing request."""
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        "list_models",
        kind=SpanKind.CLIENT,
        attributes={"gen_ai.operation.name": "list_models"},
    ) as span:
        yield span


def record_turn(span, result, state=None) -> None:
    """Set outcome and progress attributes for a finished turn."""
    if span is None or result is None:
        return
    span.set_attribute("chatcore.turn.outcome", result.outcome.value)
    span.set_attribute("chatcore.turn.content_length", len(result.content))
    if state is not None:
        span.set_attribute("chatcore.turn.agent_sections", len(state.history))
        span.set_attribute(
            "chatcore.turn.tool_calls",
            sum(len(section.tools) for section in state.history),
        )


def record_error(span, exception: BaseException) -> None:
    """Record an exception and set ERROR status on a span.

    No-ops when *span* is ``None`` (tracing disabled).
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute(
        "error.type", type(exception).__qualname__
    )
