import inspect
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from robochat.errors import (
    ProtocolAnomaly,
    RobotError,
    ToolArgumentParseError,
    ToolExecutionError,
    TransportFailure,
)
from robochat.events import (
    FullMessageEvent,
    OutputEvent,
    RawResponseEvent,
    RunCompleteEvent,
    RunErrorEvent,
    ToolResultEvent,
)
from robochat.instrumentation import (
    completion_span,
    record_diagnostic,
    record_error,
    record_outcome,
    record_tool_result,
    robot_span,
    tool_span,
)
from robochat.message import ConversationTurn
from robochat.provider import ModelProvider, ProviderRequest
from robochat.streaming import (
    CompletedInvocation,
    StreamEnded,
    StreamEvent,
    StreamFailed,
    TextDelta,
    ToolArgumentFragment,
    ToolCallAccumulator,
    ToolInvocationCompleted,
    ToolInvocationStarted,
)
from robochat.toolset import ToolSet

logger = logging.getLogger(__name__)

SEPARATOR = "\n\n"


class RunState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    EXECUTING = "executing"
    FINISHING = "finishing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class OrchestrationOutcome:
    """Terminal aggregate of one orchestration run.

    ``text`` is every text delta and tool result chunk, concatenated in
    the order they were emitted.
    """

    text: str = ""
    state: RunState = RunState.DONE
    invocations: list[CompletedInvocation] = field(default_factory=list)
    full_messages: list[str] = field(default_factory=list)
    error: RobotError | None = None

    @property
    def failed(self) -> bool:
        return self.state is RunState.FAILED


async def _close_stream(stream: Any) -> None:
    close = getattr(stream, "aclose", None) or getattr(stream, "close", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result


class OrchestrationRun:
    """A single pass of the orchestration state machine.

    The run owns its decoder, accumulator and output buffer; nothing in
    it is shared with other runs.  Iterate :meth:`events` exactly once.
    """

    def __init__(self, orchestrator: "Orchestrator", turn: ConversationTurn):
        self.orchestrator = orchestrator
        self.turn = turn
        self.state = RunState.IDLE
        self.request = orchestrator.build_request(turn)
        self._parts: list[str] = []
        self._invocations: list[CompletedInvocation] = []
        self._full_messages: list[str] = []
        self.span = None

    @asynccontextmanager
    async def traced(self):
        """Hold the run's ``invoke_agent`` span open for the caller's scope.

        The caller owns the span so that failures detected outside
        :meth:`events`, such as a deadline, land on it too.
        """
        orchestrator = self.orchestrator
        async with robot_span(
            orchestrator.name, orchestrator.model, orchestrator.max_turns,
        ) as span:
            self.span = span
            yield span

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def outcome(self, error: RobotError | None = None) -> OrchestrationOutcome:
        return OrchestrationOutcome(
            text=self.text,
            state=self.state,
            invocations=list(self._invocations),
            full_messages=list(self._full_messages),
            error=error,
        )

    # ------------------------------------------------------------------
    # Provider stream
    # ------------------------------------------------------------------

    async def _decoded(self) -> AsyncIterator[StreamEvent]:
        """Decoded events of one provider stream.

        Transport exceptions, whether raised opening the stream or
        while reading it, become a single trailing :class:`StreamFailed`.
        """
        provider = self.orchestrator.provider
        decoder = provider.new_decoder()
        try:
            raw_stream = await provider.open_stream(self.request)
        except Exception as e:
            yield StreamFailed(cause=e)
            return

        try:
            iterator = aiter(raw_stream)
            while True:
                try:
                    raw = await anext(iterator)
                except StopAsyncIteration:
                    break
                except Exception as e:
                    yield StreamFailed(cause=e)
                    return
                for event in decoder.decode(raw):
                    yield event
            for event in decoder.finish():
                yield event
        finally:
            await _close_stream(raw_stream)

    # ------------------------------------------------------------------
    # Output helpers
    # ------------------------------------------------------------------

    def _emit_text(self, text: str) -> RawResponseEvent:
        self._parts.append(text)
        return RawResponseEvent(content=text)

    def _emit_tool_text(
        self, tool_name: str, invocation_id: str, message: str, is_error: bool,
    ) -> ToolResultEvent:
        content = f"{SEPARATOR}{message}"
        self._parts.append(content)
        return ToolResultEvent(
            tool_name=tool_name,
            invocation_id=invocation_id,
            content=content,
            is_error=is_error,
        )

    def _anomaly(self, error: ProtocolAnomaly, invocation_id: str = "") -> ToolResultEvent:
        logger.warning(f"Protocol anomaly: {error}")
        record_diagnostic(self.span, error.kind, str(error), invocation_id)
        return self._emit_tool_text("", invocation_id, f"Protocol anomaly: {error}", True)

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    async def _complete(
        self,
        accumulator: ToolCallAccumulator,
        invocation_id: str,
        completed: list[CompletedInvocation],
    ) -> list[OutputEvent]:
        try:
            invocation = accumulator.on_complete(invocation_id)
        except ProtocolAnomaly as e:
            return [self._anomaly(e, invocation_id)]
        except ToolArgumentParseError as e:
            logger.warning(f"Invalid JSON in arguments for {e.tool_name}: {e.diagnostic}")
            record_diagnostic(self.span, e.kind, str(e), invocation_id, e.tool_name)
            return [self._emit_tool_text(
                e.tool_name, invocation_id,
                f"Error executing {e.tool_name}: {e}", True,
            )]

        name = invocation.tool_name
        if not isinstance(invocation.arguments, dict):
            message = (
                f"Error executing {name}: tool arguments must be a JSON object, "
                f"got {type(invocation.arguments).__name__}"
            )
            record_diagnostic(
                self.span, ToolArgumentParseError.kind, message, invocation_id, name,
            )
            return [self._emit_tool_text(name, invocation_id, message, True)]

        toolset = self.orchestrator.toolset
        events: list[OutputEvent] = []
        async with tool_span(name, invocation_id, invocation.call_id) as span:
            try:
                if toolset is None:
                    raise ToolExecutionError(name, "this robot has no tools")
                envelope = await toolset.execute(name, dict(invocation.arguments))
                response = toolset.transform_response(name, envelope)
            except Exception as e:
                record_error(span, e)
                logger.error(f"Tool {name} raised: {e}")
                invocation.result_text = f"Error executing {name}: {e}"
                invocation.is_error = True
            else:
                if not envelope.is_success:
                    logger.warning(f"Tool {name} returned errors: {envelope.error_items}")
                invocation.result_text = response.robot_message
                invocation.is_error = not envelope.is_success
                if response.chat_message is not None:
                    self._full_messages.append(response.chat_message)
                    events.append(FullMessageEvent(
                        tool_name=name, content=response.chat_message,
                    ))
            record_tool_result(span, invocation.result_text, invocation.is_error)

        completed.append(invocation)
        self._invocations.append(invocation)
        events.insert(0, self._emit_tool_text(
            name, invocation_id, invocation.result_text, invocation.is_error,
        ))
        return events

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _stream_turn(
        self, turn_number: int, completed: list[CompletedInvocation],
    ) -> AsyncIterator[OutputEvent | RobotError]:
        """Drive one provider stream.

        Yields output events, then finally either nothing (the stream
        ended normally) or the fatal :class:`RobotError` that ended it.
        """
        accumulator = ToolCallAccumulator()
        separator = SEPARATOR if turn_number > 0 else ""
        ended = False

        async with aclosing(self._decoded()) as stream:
            async for event in stream:
                if isinstance(event, TextDelta):
                    if event.text:
                        yield self._emit_text(f"{separator}{event.text}")
                        separator = ""
                elif isinstance(event, ToolInvocationStarted):
                    try:
                        accumulator.on_start(
                            event.invocation_id, event.tool_name, event.call_id,
                        )
                    except ProtocolAnomaly as e:
                        yield self._anomaly(e, event.invocation_id)
                elif isinstance(event, ToolArgumentFragment):
                    try:
                        accumulator.on_fragment(event.invocation_id, event.json_fragment)
                    except ProtocolAnomaly as e:
                        yield self._anomaly(e, event.invocation_id)
                elif isinstance(event, ToolInvocationCompleted):
                    self.state = RunState.EXECUTING
                    for output in await self._complete(
                        accumulator, event.invocation_id, completed,
                    ):
                        yield output
                    self.state = RunState.STREAMING
                elif isinstance(event, StreamEnded):
                    ended = True
                    break
                elif isinstance(event, StreamFailed):
                    yield TransportFailure(event.cause)
                    return

        if not ended:
            yield TransportFailure("stream ended without a stop event")
            return
        for invocation_id in accumulator.open_ids:
            yield self._anomaly(ProtocolAnomaly(
                f"tool invocation {invocation_id!r} was never completed"
            ), invocation_id)

    async def events(self) -> AsyncIterator[OutputEvent]:
        """Run the state machine, yielding output events as they occur.

        The last event is always a :class:`RunCompleteEvent` or a
        :class:`RunErrorEvent`.  Iterate inside :meth:`traced` for the
        run to be traced.
        """
        orchestrator = self.orchestrator
        provider = orchestrator.provider
        for turn_number in range(orchestrator.max_turns):
            self.state = RunState.STREAMING
            completed: list[CompletedInvocation] = []
            model_text: list[str] = []
            failure: RobotError | None = None

            async with completion_span(provider.system, orchestrator.model, turn_number):
                async with aclosing(self._stream_turn(turn_number, completed)) as outputs:
                    async for output in outputs:
                        if isinstance(output, RobotError):
                            failure = output
                            break
                        if isinstance(output, RawResponseEvent):
                            model_text.append(output.content)
                        yield output

            if failure is not None:
                self.state = RunState.FAILED
                outcome = self.outcome(failure)
                record_outcome(self.span, outcome)
                logger.error(f"{orchestrator.name}: {failure}")
                yield RunErrorEvent(error=failure, result=outcome)
                return

            if not completed or turn_number + 1 >= orchestrator.max_turns:
                break
            continuation = provider.continuation_messages(
                "".join(model_text).removeprefix(SEPARATOR), completed,
            )
            if not continuation:
                break
            logger.info(
                f"{orchestrator.name}: sending {len(completed)} tool "
                f"result(s) back to {provider.system}"
            )
            self.request = replace(
                self.request,
                messages=[*self.request.messages, *continuation],
            )

        self.state = RunState.FINISHING
        outcome = self.outcome()
        self.state = RunState.DONE
        outcome.state = RunState.DONE
        record_outcome(self.span, outcome)
        yield RunCompleteEvent(result=outcome)


class Orchestrator:
    """Turns a provider event stream plus tool callouts into output events.

    The orchestrator itself is stateless configuration: every call to
    :meth:`iter` or :meth:`run` starts an independent
    :class:`OrchestrationRun`, so one orchestrator may serve many
    conversations concurrently.

    Args:
        provider: Transport for the LLM API.
        toolset: Tools the model may call.  ``None`` for a tool-less robot.
        model: Model name sent to the provider.
        system_prompt: Static instructions sent with every request.
        max_tokens: Completion length limit.
        max_turns: Provider round-trips per run.  With more than one,
            tool results are sent back to the model and its reply
            continues the same output.
        name: Robot name used in logs and spans.
    """

    def __init__(
        self,
        provider: ModelProvider,
        toolset: ToolSet | None = None,
        *,
        model: str,
        system_prompt: str = "",
        max_tokens: int | None = 1024,
        max_turns: int = 1,
        name: str = "robot",
    ):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.provider = provider
        self.toolset = toolset
        self.model = model
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens
        self.max_turns = max_turns
        self.name = name

    def build_request(self, turn: ConversationTurn) -> ProviderRequest:
        return ProviderRequest(
            model=self.model,
            system_prompt=self.system_prompt,
            messages=turn.transcript(),
            tools=self.toolset.list_tools() if self.toolset else [],
            max_tokens=self.max_tokens,
        )

    def start(self, turn: ConversationTurn | str) -> OrchestrationRun:
        if isinstance(turn, str):
            turn = ConversationTurn(content=turn)
        return OrchestrationRun(self, turn)

    async def iter(self, turn: ConversationTurn | str) -> AsyncIterator[OutputEvent]:
        """Run one orchestration, yielding events as execution proceeds."""
        run = self.start(turn)
        async with run.traced():
            async with aclosing(run.events()) as events:
                async for event in events:
                    yield event

    async def run(self, turn: ConversationTurn | str) -> OrchestrationOutcome:
        """Run one orchestration to its terminal state."""
        result: OrchestrationOutcome | None = None
        async for event in self.iter(turn):
            if isinstance(event, (RunCompleteEvent, RunErrorEvent)):
                result = event.result
        if result is None:
            raise RuntimeError("iter() ended without a terminal event")
        return result
