from robochat.config import RobotConfig, configure_logging
from robochat.errors import (
    ProtocolAnomaly,
    RobotError,
    TimeoutExceeded,
    ToolArgumentParseError,
    ToolExecutionError,
    ToolNotFoundError,
    TransportFailure,
)
from robochat.instrumentation import instrument, uninstrument
from robochat.message import ConversationTurn, Message, MessageRole, ResponseEnvelope
from robochat.orchestrator import OrchestrationOutcome, Orchestrator, RunState
from robochat.provider import (
    AnthropicProvider,
    ModelProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    OpenRouter,
    ParrotProvider,
)
from robochat.robot import ChatRobot, Robot, StreamingCallbacks
from robochat.service import RobotService
from robochat.tools import Tool, ToolResultEnvelope, tool
from robochat.toolset import CompositeToolSet, ToolResponse, ToolSet

__all__ = [
    "AnthropicProvider",
    "ChatRobot",
    "CompositeToolSet",
    "ConversationTurn",
    "Message",
    "MessageRole",
    "ModelProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "OpenRouter",
    "OrchestrationOutcome",
    "Orchestrator",
    "ParrotProvider",
    "ProtocolAnomaly",
    "ResponseEnvelope",
    "Robot",
    "RobotConfig",
    "RobotError",
    "RobotService",
    "RunState",
    "StreamingCallbacks",
    "TimeoutExceeded",
    "Tool",
    "ToolArgumentParseError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolResponse",
    "ToolResultEnvelope",
    "ToolSet",
    "TransportFailure",
    "configure_logging",
    "instrument",
    "tool",
    "uninstrument",
]
