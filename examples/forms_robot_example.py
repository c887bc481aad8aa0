"""Single-robot example: a forms assistant with streamed replies.

Demonstrates:
- Defining tools with @tool that return success/failure envelopes
- Grouping tools into ToolSets and combining them with CompositeToolSet
- Building a ChatRobot from a RobotConfig and registering it in a RobotService
- The streaming, immediate and multi-part response contracts

Usage:
    uv run --env-file=.env examples/forms_robot_example.py --provider anthropic --model claude-sonnet-4-5
    uv run --env-file=.env examples/forms_robot_example.py --provider openai --model gpt-4o-mini --mode immediate
    uv run examples/forms_robot_example.py --provider parrot --mode multipart
"""

import argparse
import asyncio
import logging
import uuid

from robochat.config import RobotConfig, configure_logging
from robochat.message import ConversationTurn, Message, MessageRole
from robochat.provider import (
    AnthropicProvider,
    ModelProvider,
    OpenAIProvider,
    OpenRouter,
    ParrotProvider,
)
from robochat.robot import ChatRobot, StreamingCallbacks
from robochat.service import RobotService
from robochat.tools import ToolResultEnvelope, tool
from robochat.toolset import CompositeToolSet, ToolSet, large_response_transform

PROVIDERS = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "openrouter": OpenRouter,
    "parrot": ParrotProvider,
}

FORMS: dict[str, dict] = {}


def make_provider(provider: str) -> ModelProvider:
    return PROVIDERS[provider]()


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from robochat.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


@tool(name="formCreate")
def form_create(name: str, fields: list = None):
    """Create a new form.

    Args:
        name: Display name of the form.
        fields: Field labels, in order.
    """
    form_id = f"form_{uuid.uuid4().hex[:8]}"
    FORMS[form_id] = {"id": form_id, "name": name, "fields": fields or []}
    return ToolResultEnvelope.success(FORMS[form_id])


@tool(name="formDelete")
def form_delete(form_id: str):
    """Delete a form by id."""
    if form_id not in FORMS:
        return ToolResultEnvelope.failure(f"No form with id {form_id}")
    del FORMS[form_id]
    return ToolResultEnvelope.success({"deleted": form_id})


@tool(name="formList")
def form_list():
    """List every form with its fields."""
    return list(FORMS.values())


def build_tools() -> CompositeToolSet:
    editing = ToolSet("forms", [form_create, form_delete])
    # Listings can get long; deliver them as their own message.
    listing = ToolSet(
        "listing", [form_list],
        transform_response=large_response_transform(tool_names=["formList"]),
    )
    return CompositeToolSet(editing, listing)


async def reply(robot: ChatRobot, turn: ConversationTurn, mode: str) -> str:
    if mode == "immediate":
        envelope = await robot.respond_immediate(
            turn, on_full_message=lambda m: print(f"\n[message] {m.content}"),
        )
        print(envelope.content)
        return envelope.content

    if mode == "multipart":
        envelope = await robot.respond_multipart(
            turn, lambda later: print(f"\n[follow-up] {later.content}\n"),
        )
        print(envelope.content)
        return envelope.content

    outcome = await robot.respond_streaming(
        turn,
        StreamingCallbacks(
            on_chunk=lambda chunk: print(chunk, end="", flush=True),
            on_full_message=lambda m: print(f"\n[message] {m.content}"),
            on_error=lambda error: print(f"\n[{error.kind}] {error}"),
        ),
    )
    print()
    return outcome.text


async def main():
    parser = argparse.ArgumentParser(description="Forms robot")
    parser.add_argument("--provider", choices=PROVIDERS, default="anthropic")
    parser.add_argument("--model", default="claude-sonnet-4-5")
    parser.add_argument(
        "--mode", choices=["streaming", "immediate", "multipart"], default="streaming",
    )
    parser.add_argument("--max-turns", type=int, default=2)
    parser.add_argument("--timeout", type=float, default=60.0)
    parser.add_argument("--trace", action="store_true")
    args = parser.parse_args()

    configure_logging(logging.WARNING)
    if args.trace:
        setup_tracing("forms-robot")

    config = RobotConfig(
        name="forms",
        model=args.model,
        system_prompt=(
            "You are a helpful forms assistant. "
            "Use the provided tools to create, list and delete forms. "
            "Say briefly what you are about to do before calling a tool."
        ),
        max_turns=args.max_turns,
        timeout=args.timeout,
        follow_up_delay=2.0,
    )
    service = RobotService()
    service.register(ChatRobot(config, make_provider(args.provider), build_tools()))
    robot = service.get("forms")

    history: list[Message] = []
    print("Forms Assistant\n")

    try:
        while True:
            try:
                user_input = await asyncio.to_thread(input, "You: ")
            except (KeyboardInterrupt, EOFError):
                print("\nGoodbye!")
                break

            print("Assistant: ", end="")
            text = await reply(
                robot, ConversationTurn(content=user_input, history=history), args.mode,
            )
            history += [
                Message(role=MessageRole.USER, content=user_input),
                Message(role=MessageRole.ASSISTANT, content=text),
            ]
    finally:
        await robot.wait_for_follow_ups()


if __name__ == "__main__":
    asyncio.run(main())
