"""Server-Sent Events adapter for orchestrator events."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import asdict

from robochat.events import OutputEvent, RunCompleteEvent, RunErrorEvent


def _payload(event: OutputEvent) -> dict:
    if isinstance(event, RunCompleteEvent):
        return {"text": event.result.text if event.result else ""}
    if isinstance(event, RunErrorEvent):
        return {
            "kind": getattr(event.error, "kind", type(event.error).__name__),
            "message": str(event.error),
        }
    return asdict(event)


async def sse_generator(
    event_stream: AsyncIterator[OutputEvent],
) -> AsyncIterator[str]:
    """Convert an OutputEvent async iterator into SSE-formatted strings."""
    async for event in event_stream:
        event_type = type(event).__name__
        data = json.dumps(_payload(event))
        yield f"event: {event_type}\ndata: {data}\n\n"
    yield "event: done\ndata: {}\n\n"
