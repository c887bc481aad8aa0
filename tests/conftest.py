import asyncio
import json

import pytest

from robochat.config import RobotConfig
from robochat.decoders import AnthropicStreamDecoder
from robochat.provider import ModelProvider
from robochat.robot import ChatRobot
from robochat.streaming import CompletedInvocation
from robochat.tools import ToolResultEnvelope, tool
from robochat.toolset import ToolSet


# ---------------------------------------------------------------------------
# Raw event builders (mirror the Anthropic Messages stream shape)
# ---------------------------------------------------------------------------

def text_delta(text: str, index: int = 0) -> dict:
    return {
        "type": "content_block_delta",
        "index": index,
        "delta": {"type": "text_delta", "text": text},
    }


def tool_start(name: str, call_id: str, index: int = 1) -> dict:
    return {
        "type": "content_block_start",
        "index": index,
        "content_block": {"type": "tool_use", "id": call_id, "name": name, "input": {}},
    }


def json_delta(fragment: str, index: int = 1) -> dict:
    return {
        "type": "content_block_delta",
        "index": index,
        "delta": {"type": "input_json_delta", "partial_json": fragment},
    }


def block_stop(index: int = 1) -> dict:
    return {"type": "content_block_stop", "index": index}


def message_stop() -> dict:
    return {"type": "message_stop"}


def error_event(message: str = "overloaded") -> dict:
    return {"type": "error", "error": {"type": "overloaded_error", "message": message}}


def tool_call(
    name: str, args: dict | str, call_id: str = "toolu_1", index: int = 1,
    chunks: int = 2,
) -> list[dict]:
    """Events for one complete tool_use block, arguments split in *chunks*."""
    raw = args if isinstance(args, str) else json.dumps(args)
    size = max(1, -(-len(raw) // chunks))
    fragments = [raw[i:i + size] for i in range(0, len(raw), size)]
    return [
        tool_start(name, call_id, index),
        *[json_delta(f, index) for f in fragments],
        block_stop(index),
    ]


class StreamBroke(Exception):
    pass


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------

class MockProvider(ModelProvider):
    """Provider that replays pre-queued raw event scripts. No network calls.

    Each queued script is a list of raw events; an exception instance in
    a script is raised at that point of the stream.  ``open_error`` is
    raised by ``open_stream`` itself.
    """

    system = "mock"

    def __init__(self):
        self.scripts: list[list] = []
        self.requests: list = []
        self.open_error: Exception | None = None
        self.delay: float = 0.0

    def queue(self, *events) -> None:
        self.scripts.append(list(events))

    def new_decoder(self):
        return AnthropicStreamDecoder()

    async def open_stream(self, request):
        self.requests.append(request)
        if self.open_error is not None:
            raise self.open_error
        script = self.scripts.pop(0) if self.scripts else [message_stop()]
        return self._replay(script)

    async def _replay(self, script):
        for event in script:
            if self.delay:
                await asyncio.sleep(self.delay)
            if isinstance(event, BaseException):
                raise event
            yield event

    def continuation_messages(
        self, text: str, invocations: list[CompletedInvocation],
    ) -> list[dict]:
        return [
            {"role": "assistant", "content": text,
             "tool_calls": [inv.tool_name for inv in invocations]},
            *[{"role": "tool", "content": inv.result_text} for inv in invocations],
        ]


# ---------------------------------------------------------------------------
# In-memory forms tools
# ---------------------------------------------------------------------------

class FormsBackend:
    """Records every call so tests can assert exactly-once execution."""

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.forms: dict[str, dict] = {}

    def create(self, name: str) -> ToolResultEnvelope:
        self.calls.append(("formCreate", {"name": name}))
        form_id = f"form_{len(self.forms) + 1}"
        self.forms[form_id] = {"id": form_id, "name": name}
        return ToolResultEnvelope.success(self.forms[form_id])


def forms_tool_set(backend: FormsBackend) -> ToolSet:
    @tool(name="formCreate")
    async def form_create(name: str):
        """Create a new form.

        Args:
            name: Title of the form.
        """
        return backend.create(name)

    @tool(name="formDelete")
    def form_delete(form_id: str):
        """Delete a form."""
        backend.calls.append(("formDelete", {"form_id": form_id}))
        if form_id not in backend.forms:
            return ToolResultEnvelope.failure(f"form {form_id} not found")
        del backend.forms[form_id]
        return ToolResultEnvelope.success({"deleted": form_id})

    @tool(name="formExplode")
    def form_explode():
        """Always raises."""
        backend.calls.append(("formExplode", {}))
        raise RuntimeError("backend unavailable")

    return ToolSet("forms", [form_create, form_delete, form_explode])


@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def backend():
    return FormsBackend()


@pytest.fixture
def forms_tools(backend):
    return forms_tool_set(backend)


@pytest.fixture
def make_robot(mock_provider, forms_tools):
    """Factory fixture building ChatRobots on the mock provider."""
    def _make(provider=None, toolset=forms_tools, **config):
        config.setdefault("name", "forms")
        config.setdefault("model", "mock-model")
        return ChatRobot(
            RobotConfig(**config),
            provider or mock_provider,
            toolset,
        )
    return _make
