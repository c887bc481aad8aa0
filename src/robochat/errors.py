"""Error taxonomy for orchestration runs.

Recoverable errors (:class:`ProtocolAnomaly`, :class:`ToolArgumentParseError`,
:class:`ToolExecutionError`) are turned into inline text by the
Orchestrator and never abort a run.  Fatal errors
(:class:`TransportFailure`, :class:`TimeoutExceeded`) end the current
run and are surfaced once through the error channel.
"""


class RobotError(Exception):
    """Base class for every error raised by robochat."""

    kind: str = "robot_error"
    recoverable: bool = True


class ProtocolAnomaly(RobotError):
    """A stream event arrived out of order or referenced an unknown invocation."""

    kind = "protocol_anomaly"


class ToolArgumentParseError(RobotError):
    """The accumulated argument fragments are not valid JSON.

    Args:
        tool_name: Name of the tool whose arguments failed to parse.
        raw: The full accumulated argument buffer.
        diagnostic: The JSON decoder's message.
    """

    kind = "tool_argument_parse_error"

    def __init__(self, tool_name: str, raw: str, diagnostic: str):
        super().__init__(
            f"could not parse tool arguments: {diagnostic}"
        )
        self.tool_name = tool_name
        self.raw = raw
        self.diagnostic = diagnostic


class ToolExecutionError(RobotError):
    """A tool raised, or returned a failure envelope."""

    kind = "tool_execution_error"

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class ToolNotFoundError(ToolExecutionError):
    """No tool set owns the requested tool name."""

    kind = "tool_not_found"


class TransportFailure(RobotError):
    """The provider stream broke, was rejected, or ended without a stop event."""

    kind = "transport_failure"
    recoverable = False

    def __init__(self, cause: BaseException | str):
        detail = cause if isinstance(cause, str) else (
            str(cause) or type(cause).__name__
        )
        super().__init__(f"Provider connection failed: {detail}")
        self.cause = cause


class TimeoutExceeded(RobotError):
    """The run did not reach a terminal state within its time bound."""

    kind = "timeout"
    recoverable = False

    def __init__(self, seconds: float):
        super().__init__(f"Response timed out after {seconds:g} seconds")
        self.seconds = seconds
