import math
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_serializer


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / 4)


class Message(BaseModel):
    role: MessageRole
    content: str

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value


class ConversationTurn(Message):
    """A new inbound message plus the prior turns that precede it.

    ``history`` is supplied by the conversation manager, oldest first,
    and is sent to the provider verbatim ahead of the new message.
    """

    role: MessageRole = MessageRole.USER
    history: list[Message] = Field(default_factory=list)

    def transcript(self) -> list[dict]:
        """History plus this turn as ``{"role", "content"}`` dicts.

        Only user and assistant turns are forwarded; system prompts
        belong to the robot and tool messages to a single run.
        """
        messages = [
            {"role": m.role.value, "content": m.content}
            for m in self.history
            if m.role in (MessageRole.USER, MessageRole.ASSISTANT)
        ]
        messages.append({"role": self.role.value, "content": self.content})
        return messages


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResponseEnvelope(BaseModel):
    """The unit handed back to callers of a robot."""

    role: MessageRole = MessageRole.ASSISTANT
    content: str
    created_at: datetime = Field(default_factory=_utcnow)
    estimated_token_count: int = 0
    is_error: bool = False
    error_kind: str | None = None

    def model_post_init(self, __context) -> None:
        if not self.estimated_token_count:
            self.estimated_token_count = estimate_tokens(self.content)

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value
