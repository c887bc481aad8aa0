import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from robochat.errors import ToolNotFoundError
from robochat.tools import Tool, ToolResultEnvelope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResponse:
    """How a tool result is shown to the user.

    ``robot_message`` is the inline summary inserted into the chunk
    stream where the tool call occurred.  ``chat_message``, when set,
    is a separate full message delivered on the notification channel.
    """

    robot_message: str
    chat_message: str | None = None


ResponseTransform = Callable[[str, ToolResultEnvelope], ToolResponse]


def _render(payload: Any, indent: int | None = 2) -> str:
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, indent=indent, default=str)


def default_transform_response(
    tool_name: str, envelope: ToolResultEnvelope,
) -> ToolResponse:
    if envelope.is_success:
        return ToolResponse(
            robot_message=(
                f"{tool_name} completed successfully\n\n"
                f"Result: {_render(envelope.response)}"
            ),
        )
    errors = ", ".join(str(e) for e in envelope.error_items or [])
    return ToolResponse(
        robot_message=f"{tool_name} failed\n\nErrors: {errors or 'Unknown error'}",
    )


def large_response_transform(
    tool_names: Iterable[str] = (),
    threshold: int = 1000,
) -> ResponseTransform:
    """Send big results to the conversation instead of the text stream.

    Results from *tool_names*, or whose rendered payload is longer than
    *threshold* characters, become a short inline acknowledgement plus
    a full ``chat_message``.  Everything else falls back to
    :func:`default_transform_response`.
    """
    always = frozenset(tool_names)

    def transform(tool_name: str, envelope: ToolResultEnvelope) -> ToolResponse:
        if not envelope.is_success:
            return default_transform_response(tool_name, envelope)
        rendered = _render(envelope.response, indent=None)
        if tool_name in always or len(rendered) > threshold:
            return ToolResponse(
                robot_message=(
                    f"{tool_name} completed successfully. "
                    "Results have been sent to the conversation."
                ),
                chat_message=rendered,
            )
        return default_transform_response(tool_name, envelope)

    return transform


class ToolSet:
    """A named group of tools with a shared result presentation.

    Tool sets are the registry the Orchestrator dispatches to.  They are
    shared read-only between concurrent runs; any mutable state a tool
    needs lives in the tool (typically a closure over a client object).

    Args:
        name: Name identifying this tool set in logs.
        tools: The tools this set provides.
        transform_response: Turns a :class:`ToolResultEnvelope` into the
            text shown to the user.  Defaults to
            :func:`default_transform_response`.

    Example::

        def forms_tool_set(client: FormsClient) -> ToolSet:
            @tool
            async def form_create(name: str):
                \"\"\"Create a new form.\"\"\"
                return await client.create_form(name)

            return ToolSet("forms", [form_create])
    """

    def __init__(
        self,
        name: str,
        tools: Iterable[Tool] = (),
        transform_response: ResponseTransform | None = None,
    ):
        self.name = name
        self._tools = {t.name: t for t in tools}
        self._transform = transform_response or default_transform_response

    def __contains__(self, tool_name: str) -> bool:
        return tool_name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def tool_names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[dict]:
        """Provider-neutral schemas for every tool in the set."""
        return [t.tool_schema() for t in self._tools.values()]

    async def execute(self, tool_name: str, args: dict) -> ToolResultEnvelope:
        """Run *tool_name* with *args*.

        Raises:
            ToolNotFoundError: If the set has no such tool.

        Exceptions raised by the tool itself propagate unchanged.
        """
        tool_obj = self._tools.get(tool_name)
        if tool_obj is None:
            raise ToolNotFoundError(
                tool_name,
                f"Unknown tool: {tool_name}. Available tools: "
                f"{', '.join(self.tool_names()) or 'none'}",
            )
        logger.info(f"Calling {tool_name} with {args}")
        return await tool_obj(**args)

    def transform_response(
        self, tool_name: str, envelope: ToolResultEnvelope,
    ) -> ToolResponse:
        return self._transform(tool_name, envelope)


class CompositeToolSet(ToolSet):
    """Several tool sets behind one registry.

    A tool call is dispatched to the first set that owns the name, and
    that set's ``transform_response`` formats the result.
    """

    def __init__(self, *tool_sets: ToolSet, name: str = "composite"):
        self.name = name
        self._sets = list(tool_sets)

    def _owner(self, tool_name: str) -> ToolSet | None:
        for tool_set in self._sets:
            if tool_name in tool_set:
                return tool_set
        return None

    def __contains__(self, tool_name: str) -> bool:
        return self._owner(tool_name) is not None

    def __len__(self) -> int:
        return sum(len(s) for s in self._sets)

    def tool_names(self) -> list[str]:
        return [n for s in self._sets for n in s.tool_names()]

    def list_tools(self) -> list[dict]:
        return [schema for s in self._sets for schema in s.list_tools()]

    async def execute(self, tool_name: str, args: dict) -> ToolResultEnvelope:
        owner = self._owner(tool_name)
        if owner is None:
            raise ToolNotFoundError(
                tool_name,
                f"Unknown tool: {tool_name}. Available tools: "
                f"{', '.join(self.tool_names()) or 'none'}",
            )
        return await owner.execute(tool_name, args)

    def transform_response(
        self, tool_name: str, envelope: ToolResultEnvelope,
    ) -> ToolResponse:
        owner = self._owner(tool_name)
        if owner is None:
            return default_transform_response(tool_name, envelope)
        return owner.transform_response(tool_name, envelope)
