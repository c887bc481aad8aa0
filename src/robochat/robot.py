import asyncio
import inspect
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from robochat.config import RobotConfig
from robochat.errors import RobotError, TimeoutExceeded
from robochat.events import (
    FullMessageEvent,
    RawResponseEvent,
    RunCompleteEvent,
    RunErrorEvent,
    ToolResultEvent,
)
from robochat.instrumentation import record_outcome
from robochat.message import ConversationTurn, ResponseEnvelope, estimate_tokens
from robochat.orchestrator import OrchestrationOutcome, Orchestrator, RunState
from robochat.provider import ModelProvider
from robochat.toolset import ToolSet

logger = logging.getLogger(__name__)

Callback = Callable[..., Any]

APOLOGY = "I apologize, but I encountered an error"
DELAYED_ERROR = "Error in delayed response"


async def _call(callback: Callback | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def _as_turn(turn: ConversationTurn | str) -> ConversationTurn:
    if isinstance(turn, str):
        return ConversationTurn(content=turn)
    return turn


@dataclass
class StreamingCallbacks:
    """Hooks for the streaming contract.  Each may be sync or async.

    ``on_stream_start`` fires once before the first chunk,
    ``on_stream_finished`` once after the run ends either way, and
    ``on_error`` once if the run failed.
    """

    on_stream_start: Callable[[ConversationTurn], Any] | None = None
    on_chunk: Callable[[str], Any] | None = None
    on_full_message: Callable[[ResponseEnvelope], Any] | None = None
    on_stream_finished: Callable[[ResponseEnvelope], Any] | None = None
    on_error: Callable[[RobotError], Any] | None = None


class Robot(Protocol):
    """What a conversation manager needs from a chat robot."""

    name: str

    def estimate_tokens(self, text: str) -> int: ...

    async def respond_streaming(
        self,
        turn: ConversationTurn | str,
        callbacks: StreamingCallbacks | None = None,
        timeout: float | None = None,
    ) -> OrchestrationOutcome: ...

    async def respond_immediate(
        self,
        turn: ConversationTurn | str,
        timeout: float | None = None,
        on_full_message: Callable[[ResponseEnvelope], Any] | None = None,
    ) -> ResponseEnvelope: ...

    async def respond_multipart(
        self,
        turn: ConversationTurn | str,
        delayed_callback: Callable[[ResponseEnvelope], Any],
        timeout: float | None = None,
    ) -> ResponseEnvelope: ...


class ChatRobot:
    """A chat robot backed by one provider and one tool set.

    All three response contracts run the same :class:`Orchestrator`; they
    only differ in how its events reach the caller.

    Args:
        config: Name, model, prompt and limits.
        provider: Transport for the LLM API.
        toolset: Tools the model may call, or ``None``.
    """

    def __init__(
        self,
        config: RobotConfig,
        provider: ModelProvider,
        toolset: ToolSet | None = None,
    ):
        self.config = config
        self.provider = provider
        self.toolset = toolset
        self.orchestrator = Orchestrator(
            provider,
            toolset,
            model=config.model,
            system_prompt=config.system_prompt,
            max_tokens=config.max_tokens,
            max_turns=config.max_turns,
            name=config.name,
        )
        self._follow_ups: set[asyncio.Task] = set()

    @property
    def name(self) -> str:
        return self.config.name

    def estimate_tokens(self, text: str) -> int:
        return estimate_tokens(text)

    def _envelope(self, outcome: OrchestrationOutcome) -> ResponseEnvelope:
        return ResponseEnvelope(
            content=outcome.text,
            is_error=outcome.failed,
            error_kind=outcome.error.kind if outcome.error else None,
        )

    def _error_envelope(
        self, error: BaseException, prefix: str = APOLOGY,
    ) -> ResponseEnvelope:
        return ResponseEnvelope(
            content=f"{prefix}: {error}",
            is_error=True,
            error_kind=getattr(error, "kind", type(error).__name__),
        )

    async def respond_streaming(
        self,
        turn: ConversationTurn | str,
        callbacks: StreamingCallbacks | None = None,
        timeout: float | None = None,
    ) -> OrchestrationOutcome:
        """Run one orchestration, forwarding every chunk as it is produced.

        Fatal errors do not raise; they reach ``callbacks.on_error`` and
        the returned outcome has ``state == RunState.FAILED``.
        """
        callbacks = callbacks or StreamingCallbacks()
        turn = _as_turn(turn)
        if timeout is None:
            timeout = self.config.timeout

        run = self.orchestrator.start(turn)
        outcome: OrchestrationOutcome | None = None
        await _call(callbacks.on_stream_start, turn)

        async with run.traced() as span:
            deadline = asyncio.timeout(timeout)
            try:
                async with deadline:
                    async with aclosing(run.events()) as events:
                        async for event in events:
                            if isinstance(event, (RawResponseEvent, ToolResultEvent)):
                                await _call(callbacks.on_chunk, event.content)
                            elif isinstance(event, FullMessageEvent):
                                await _call(
                                    callbacks.on_full_message,
                                    ResponseEnvelope(content=event.content),
                                )
                            elif isinstance(event, (RunCompleteEvent, RunErrorEvent)):
                                outcome = event.result
            except TimeoutError:
                if not deadline.expired():
                    raise
                run.state = RunState.FAILED
                error = TimeoutExceeded(timeout)
                logger.error(f"{self.name}: {error}")
                outcome = run.outcome(error)
                record_outcome(span, outcome)

        if outcome.error is not None:
            await _call(callbacks.on_error, outcome.error)
        await _call(callbacks.on_stream_finished, self._envelope(outcome))
        return outcome

    async def respond_immediate(
        self,
        turn: ConversationTurn | str,
        timeout: float | None = None,
        on_full_message: Callable[[ResponseEnvelope], Any] | None = None,
    ) -> ResponseEnvelope:
        """Run one orchestration and return its whole text at once.

        On a fatal error the envelope has ``is_error`` set and explains
        what went wrong instead of carrying partial text.
        """
        return await self._immediate(turn, timeout, on_full_message, APOLOGY)

    async def _immediate(
        self,
        turn: ConversationTurn | str,
        timeout: float | None,
        on_full_message: Callable[[ResponseEnvelope], Any] | None,
        error_prefix: str,
    ) -> ResponseEnvelope:
        chunks: list[str] = []
        outcome = await self.respond_streaming(
            turn,
            StreamingCallbacks(
                on_chunk=chunks.append,
                on_full_message=on_full_message,
            ),
            timeout=timeout,
        )
        if outcome.failed:
            return self._error_envelope(outcome.error, error_prefix)
        return ResponseEnvelope(content="".join(chunks))

    async def respond_multipart(
        self,
        turn: ConversationTurn | str,
        delayed_callback: Callable[[ResponseEnvelope], Any],
        timeout: float | None = None,
    ) -> ResponseEnvelope:
        """Reply now, then follow up once in the background.

        Returns the first reply.  A second, independent run on the
        follow-up prompt starts after ``config.follow_up_delay`` seconds
        and hands its envelope to *delayed_callback*.  If the robot is
        closed before then, the callback never fires.
        """
        turn = _as_turn(turn)
        first = await self.respond_immediate(turn, timeout=timeout)

        follow_up = ConversationTurn(
            content=self.config.follow_up_prompt(turn.content),
            history=list(turn.history),
        )
        task = asyncio.create_task(
            self._follow_up(follow_up, delayed_callback, timeout),
            name=f"{self.name}-follow-up",
        )
        self._follow_ups.add(task)
        task.add_done_callback(self._follow_ups.discard)
        return first

    async def _follow_up(
        self,
        turn: ConversationTurn,
        delayed_callback: Callable[[ResponseEnvelope], Any],
        timeout: float | None,
    ) -> None:
        if self.config.follow_up_delay:
            await asyncio.sleep(self.config.follow_up_delay)
        try:
            envelope = await self._immediate(turn, timeout, None, DELAYED_ERROR)
        except Exception as e:
            logger.error(f"{self.name}: follow-up run crashed: {e}")
            envelope = self._error_envelope(e, DELAYED_ERROR)
        try:
            await _call(delayed_callback, envelope)
        except Exception as e:
            logger.error(f"{self.name}: delayed callback raised: {e}")

    @property
    def pending_follow_ups(self) -> int:
        return len(self._follow_ups)

    async def wait_for_follow_ups(self) -> None:
        """Wait until every scheduled follow-up has delivered its reply."""
        while self._follow_ups:
            await asyncio.gather(*list(self._follow_ups), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel follow-ups that have not finished yet."""
        tasks = list(self._follow_ups)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
