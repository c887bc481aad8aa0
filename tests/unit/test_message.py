from datetime import timezone

from robochat.message import (
    ConversationTurn,
    Message,
    MessageRole,
    ResponseEnvelope,
    estimate_tokens,
)


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_turn_defaults_to_user_role():
    turn = ConversationTurn(content="hi")
    assert turn.role is MessageRole.USER
    assert turn.history == []


def test_transcript_puts_history_first():
    turn = ConversationTurn(
        content="and now a survey",
        history=[
            Message(role=MessageRole.USER, content="make a form"),
            Message(role=MessageRole.ASSISTANT, content="done"),
        ],
    )
    assert turn.transcript() == [
        {"role": "user", "content": "make a form"},
        {"role": "assistant", "content": "done"},
        {"role": "user", "content": "and now a survey"},
    ]


def test_transcript_skips_system_and_tool_history():
    turn = ConversationTurn(
        content="hi",
        history=[
            Message(role=MessageRole.SYSTEM, content="be nice"),
            Message(role=MessageRole.TOOL, content="{}"),
        ],
    )
    assert turn.transcript() == [{"role": "user", "content": "hi"}]


def test_envelope_defaults():
    env = ResponseEnvelope(content="x" * 9)
    assert env.role is MessageRole.ASSISTANT
    assert env.estimated_token_count == 3
    assert env.created_at.tzinfo is timezone.utc
    assert not env.is_error
    assert env.error_kind is None


def test_envelope_keeps_explicit_token_count():
    assert ResponseEnvelope(content="abc", estimated_token_count=10).estimated_token_count == 10


def test_role_serializes_to_value():
    dumped = ResponseEnvelope(content="hi", is_error=True, error_kind="timeout").model_dump()
    assert dumped["role"] == "assistant"
    assert dumped["error_kind"] == "timeout"
    assert Message(role=MessageRole.USER, content="x").model_dump() == {
        "role": "user", "content": "x",
    }
