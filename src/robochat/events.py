"""Output events emitted by an orchestration run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class OutputEvent:
    """Base for all orchestrator output events."""


@dataclass
class RawResponseEvent(OutputEvent):
    """Text delta from the provider stream, forwarded as-is."""

    content: str = ""


@dataclass
class ToolResultEvent(OutputEvent):
    """Tool result text, inserted where the tool call completed.

    ``content`` already carries its leading blank-line separator.
    ``is_error`` marks inline diagnostics (tool failures, argument
    parse errors and protocol anomalies).
    """

    tool_name: str = ""
    invocation_id: str = ""
    content: str = ""
    is_error: bool = False


@dataclass
class FullMessageEvent(OutputEvent):
    """A complete message produced by a tool, kept out of the text stream."""

    tool_name: str = ""
    content: str = ""


@dataclass
class RunCompleteEvent(OutputEvent):
    """Final event of a successful run."""

    result: Any = None


@dataclass
class RunErrorEvent(OutputEvent):
    """Final event of a failed run.  No completion event follows."""

    error: Any = None
    result: Any = None
