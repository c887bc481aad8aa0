"""Provider stream decoders.

A decoder turns one raw provider stream event into zero or more
:class:`~robochat.streaming.StreamEvent` objects.  Decoders never raise:
unknown event kinds decode to :class:`~robochat.streaming.Ignored`,
missing fields degrade to empty values, and an ``index`` that is not an
int or a ``choices``/``tool_calls`` that is not a list is ignored.  Raw
events may be SDK objects or plain dicts.

One decoder instance serves exactly one stream; providers hand out a
fresh one per run via ``ModelProvider.new_decoder()``.
"""

from __future__ import annotations

from typing import Any

from robochat.streaming import (
    Ignored,
    StreamEnded,
    StreamEvent,
    StreamFailed,
    TextDelta,
    ToolArgumentFragment,
    ToolInvocationCompleted,
    ToolInvocationStarted,
)


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _index(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _items(value: Any) -> list | tuple:
    if isinstance(value, (list, tuple)):
        return value
    return ()


class StreamDecoder:
    """Base decoder interface."""

    def decode(self, event: Any) -> list[StreamEvent]:
        raise NotImplementedError

    def finish(self) -> list[StreamEvent]:
        """Events implied by the raw stream running out."""
        return []


class TextStreamDecoder(StreamDecoder):
    """Decoder for providers that stream bare text chunks."""

    def decode(self, event: Any) -> list[StreamEvent]:
        if isinstance(event, str):
            return [TextDelta(text=event)]
        return [Ignored(kind=type(event).__name__)]

    def finish(self) -> list[StreamEvent]:
        return [StreamEnded()]


class AnthropicStreamDecoder(StreamDecoder):
    """Decoder for Anthropic Messages API stream events.

    ``content_block_delta`` and ``content_block_stop`` only carry the
    block index, so the decoder remembers which indices are ``tool_use``
    blocks and which tool id each belongs to.
    """

    def __init__(self) -> None:
        self._tool_blocks: dict[int, str] = {}

    def decode(self, event: Any) -> list[StreamEvent]:
        event_type = _text(_get(event, "type"))
        index = _index(_get(event, "index", 0))

        if event_type == "content_block_start":
            block = _get(event, "content_block")
            if _get(block, "type") != "tool_use" or index is None:
                return [Ignored(kind=event_type)]
            call_id = _text(_get(block, "id")) or f"block_{index}"
            self._tool_blocks[index] = call_id
            return [ToolInvocationStarted(
                invocation_id=call_id,
                tool_name=_text(_get(block, "name")),
                call_id=call_id,
            )]

        if event_type == "content_block_delta":
            delta = _get(event, "delta")
            delta_type = _get(delta, "type")
            if delta_type == "text_delta":
                return [TextDelta(text=_text(_get(delta, "text")))]
            if delta_type == "input_json_delta" and index is not None:
                # A fragment for a block that never started is passed on
                # under a synthetic id so the accumulator can report it.
                invocation_id = self._tool_blocks.get(index, f"block_{index}")
                return [ToolArgumentFragment(
                    invocation_id=invocation_id,
                    json_fragment=_text(_get(delta, "partial_json")),
                )]
            return [Ignored(kind=f"{event_type}:{delta_type}")]

        if event_type == "content_block_stop":
            invocation_id = (
                None if index is None else self._tool_blocks.pop(index, None)
            )
            if invocation_id is None:
                return [Ignored(kind=event_type)]
            return [ToolInvocationCompleted(invocation_id=invocation_id)]

        if event_type == "message_stop":
            return [StreamEnded()]

        if event_type == "error":
            error = _get(event, "error")
            message = _text(_get(error, "message")) or _text(_get(error, "type"))
            return [StreamFailed(cause=message or "provider reported an error")]

        return [Ignored(kind=event_type)]


class OpenAIStreamDecoder(StreamDecoder):
    """Decoder for OpenAI chat-completions stream chunks.

    One chunk may carry a text delta and several tool-call deltas, and
    deltas after the first reference a call by its positional index
    only.  Open calls are completed, in index order, when the chunk
    carrying ``finish_reason`` arrives.
    """

    def __init__(self) -> None:
        self._open: dict[int, str] = {}
        self._finished = False

    def _complete_all(self) -> list[StreamEvent]:
        completed = [
            ToolInvocationCompleted(invocation_id=self._open[i])
            for i in sorted(self._open)
        ]
        self._open.clear()
        return completed

    def decode(self, event: Any) -> list[StreamEvent]:
        choices = _items(_get(event, "choices"))
        if not choices:
            # Usage-only trailer, or an empty keep-alive chunk.
            return [Ignored(kind="chunk_without_choices")]
        choice = choices[0]
        delta = _get(choice, "delta")
        events: list[StreamEvent] = []

        content = _text(_get(delta, "content"))
        if content:
            events.append(TextDelta(text=content))

        for tool_delta in _items(_get(delta, "tool_calls")):
            index = _index(_get(tool_delta, "index", 0))
            if index is None:
                continue
            function = _get(tool_delta, "function")
            name = _text(_get(function, "name"))
            call_id = _text(_get(tool_delta, "id"))
            arguments = _text(_get(function, "arguments"))

            invocation_id = self._open.get(index)
            if invocation_id is None and (name or call_id):
                invocation_id = call_id or f"call_{index}"
                self._open[index] = invocation_id
                events.append(ToolInvocationStarted(
                    invocation_id=invocation_id,
                    tool_name=name,
                    call_id=invocation_id,
                ))
            if arguments:
                events.append(ToolArgumentFragment(
                    invocation_id=invocation_id or f"call_{index}",
                    json_fragment=arguments,
                ))

        if _get(choice, "finish_reason"):
            events.extend(self._complete_all())
            self._finished = True

        return events or [Ignored(kind="empty_delta")]

    def finish(self) -> list[StreamEvent]:
        if not self._finished:
            # Truncated stream: no finish_reason, so no StreamEnded either.
            return []
        return [*self._complete_all(), StreamEnded()]
