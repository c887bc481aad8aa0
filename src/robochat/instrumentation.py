"""Optional OpenTelemetry tracing for orchestration runs.

One run produces an ``invoke_agent`` span owned by whoever drives the
run (``Orchestrator.iter`` or a ``ChatRobot`` contract), a ``chat``
child span per provider stream, and an ``execute_tool`` child span per
tool invocation.  Inline diagnostics (protocol anomalies, unparseable
arguments) are span events on the run span; they never change its
status.  Fatal errors and timeouts set ERROR status with ``error.type``
taken from :attr:`RobotError.kind`.

Everything here is a no-op until :func:`instrument` is called.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None

RUN_STATE = "robochat.run.state"
RUN_MAX_TURNS = "robochat.run.max_turns"
RUN_TURN = "robochat.run.turn"
RUN_INVOCATIONS = "robochat.run.tool_invocations"
RUN_OUTPUT_CHARS = "robochat.run.output_chars"
RUN_FULL_MESSAGES = "robochat.run.full_messages"
TOOL_INVOCATION_ID = "robochat.tool.invocation_id"
TOOL_IS_ERROR = "robochat.tool.is_error"
TOOL_RESULT_CHARS = "robochat.tool.result_chars"
DIAGNOSTIC_EVENT = "robochat.diagnostic"


def instrument(*, tracer_name: str = "robochat") -> None:
    """Enable OpenTelemetry tracing for all orchestration runs.

    Call once at startup, after configuring your TracerProvider.
    Requires ``opentelemetry-api``: ``pip install robochat[otel]``

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install robochat[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured; robot spans will be discarded."
        )
    else:
        logger.info(f"Tracing orchestration runs with tracer {tracer_name!r}")


def uninstrument() -> None:
    """Stop emitting spans for new runs."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def robot_span(robot_name: str, model: str, max_turns: int = 1):
    """Span covering one orchestration run, across all its provider turns."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"invoke_agent {robot_name}",
        attributes={
            "gen_ai.operation.name": "invoke_agent",
            "gen_ai.agent.name": robot_name,
            "gen_ai.request.model": model,
            RUN_MAX_TURNS: max_turns,
        },
    ) as span:
        yield span


@asynccontextmanager
async def completion_span(system: str, model: str, turn_number: int = 0):
    """Span covering one provider stream; ``turn_number`` counts from 0."""
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        f"chat {model}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": system,
            "gen_ai.request.model": model,
            RUN_TURN: turn_number,
        },
    ) as span:
        yield span


@asynccontextmanager
async def tool_span(tool_name: str, invocation_id: str, call_id: str):
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"execute_tool {tool_name}",
        attributes={
            "gen_ai.operation.name": "execute_tool",
            "gen_ai.tool.name": tool_name,
            "gen_ai.tool.call.id": call_id,
            TOOL_INVOCATION_ID: invocation_id,
        },
    ) as span:
        yield span


def record_tool_result(span, result_text: str, is_error: bool) -> None:
    """Mark what an invocation put into the output stream.

    A failure envelope or a caught tool exception is still an inline
    result, so the span status is left alone here.
    """
    if span is None:
        return
    span.set_attribute(TOOL_IS_ERROR, is_error)
    span.set_attribute(TOOL_RESULT_CHARS, len(result_text))


def record_diagnostic(
    span, kind: str, message: str, invocation_id: str = "", tool_name: str = "",
) -> None:
    """Attach an inline, recoverable diagnostic to the run span as an event."""
    if span is None:
        return
    span.add_event(
        DIAGNOSTIC_EVENT,
        attributes={
            "error.type": kind,
            "robochat.diagnostic.message": message,
            TOOL_INVOCATION_ID: invocation_id,
            "gen_ai.tool.name": tool_name,
        },
    )


def record_error(span, exception: BaseException) -> None:
    """Record an exception and set ERROR status on a span.

    ``error.type`` is the robot error kind when there is one, else the
    exception class name.
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute(
        "error.type", getattr(exception, "kind", None) or type(exception).__qualname__
    )


def record_outcome(span, outcome) -> None:
    """Summarise a finished run on its ``invoke_agent`` span."""
    if span is None:
        return
    span.set_attribute(RUN_STATE, outcome.state.value)
    span.set_attribute(RUN_INVOCATIONS, len(outcome.invocations))
    span.set_attribute(RUN_OUTPUT_CHARS, len(outcome.text))
    span.set_attribute(RUN_FULL_MESSAGES, len(outcome.full_messages))
    if outcome.error is not None:
        record_error(span, outcome.error)
