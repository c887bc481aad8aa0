"""Streaming primitives for provider responses.

Decoders turn provider-specific stream events into the small
:class:`StreamEvent` vocabulary below.  The :class:`ToolCallAccumulator`
reassembles tool invocations whose arguments arrive in JSON fragments
across multiple events.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from robochat.errors import ProtocolAnomaly, ToolArgumentParseError


@dataclass(frozen=True)
class StreamEvent:
    """Base for all decoded stream events."""


@dataclass(frozen=True)
class TextDelta(StreamEvent):
    text: str = ""


@dataclass(frozen=True)
class ToolInvocationStarted(StreamEvent):
    """The model began a tool call.

    ``invocation_id`` keys the accumulator for the rest of the stream;
    ``call_id`` is the provider's own id, echoed back with the result.
    """

    invocation_id: str
    tool_name: str
    call_id: str = ""


@dataclass(frozen=True)
class ToolArgumentFragment(StreamEvent):
    invocation_id: str
    json_fragment: str = ""


@dataclass(frozen=True)
class ToolInvocationCompleted(StreamEvent):
    invocation_id: str


@dataclass(frozen=True)
class StreamEnded(StreamEvent):
    """The provider finished the response normally."""


@dataclass(frozen=True)
class StreamFailed(StreamEvent):
    cause: Any = None


@dataclass(frozen=True)
class Ignored(StreamEvent):
    """An event irrelevant to text/tool orchestration (pings, envelopes)."""

    kind: str = ""


@dataclass
class ToolInvocationState:
    """An in-flight tool invocation."""

    invocation_id: str
    tool_name: str
    call_id: str = ""
    argument_buffer: str = ""


@dataclass
class CompletedInvocation:
    """A finalized tool invocation with its parsed arguments.

    ``result_text`` and ``is_error`` are filled in by the Orchestrator
    once the tool has run.
    """

    invocation_id: str
    tool_name: str
    arguments: Any = field(default_factory=dict)
    call_id: str = ""
    raw_arguments: str = ""
    result_text: str = ""
    is_error: bool = False


class ToolCallAccumulator:
    """Assembles complete tool invocations from streaming fragments.

    Invocations are keyed strictly by ``invocation_id`` so fragments of
    several open invocations may interleave.  One accumulator serves one
    stream and must not be shared between runs.
    """

    def __init__(self) -> None:
        self._pending: dict[str, ToolInvocationState] = {}

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def open_ids(self) -> list[str]:
        return list(self._pending)

    def on_start(
        self, invocation_id: str, tool_name: str, call_id: str = "",
    ) -> None:
        if invocation_id in self._pending:
            raise ProtocolAnomaly(
                f"duplicate start for tool invocation {invocation_id!r} "
                f"({tool_name}); {self._pending[invocation_id].tool_name} "
                "is still open"
            )
        self._pending[invocation_id] = ToolInvocationState(
            invocation_id=invocation_id,
            tool_name=tool_name,
            call_id=call_id or invocation_id,
        )

    def on_fragment(self, invocation_id: str, json_fragment: str) -> None:
        state = self._pending.get(invocation_id)
        if state is None:
            raise ProtocolAnomaly(
                f"argument fragment for tool invocation {invocation_id!r} "
                "which was never started"
            )
        state.argument_buffer += json_fragment

    def on_complete(self, invocation_id: str) -> CompletedInvocation:
        """Finalize *invocation_id* and parse its arguments.

        The invocation is discarded whether or not parsing succeeds.

        Raises:
            ProtocolAnomaly: No such invocation is open.
            ToolArgumentParseError: The buffer is not a single JSON value.
        """
        state = self._pending.pop(invocation_id, None)
        if state is None:
            raise ProtocolAnomaly(
                f"completion for tool invocation {invocation_id!r} "
                "which was never started"
            )
        raw = state.argument_buffer
        if raw.strip():
            try:
                arguments = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ToolArgumentParseError(state.tool_name, raw, str(e)) from e
        else:
            arguments = {}
        return CompletedInvocation(
            invocation_id=state.invocation_id,
            tool_name=state.tool_name,
            arguments=arguments,
            call_id=state.call_id,
            raw_arguments=raw,
        )
