import json
import logging
import os
import random
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from robochat.decoders import (
    AnthropicStreamDecoder,
    OpenAIStreamDecoder,
    StreamDecoder,
    TextStreamDecoder,
)
from robochat.streaming import CompletedInvocation

logger = logging.getLogger(__name__)


@dataclass
class ProviderRequest:
    """Provider-neutral description of one streaming completion.

    ``messages`` starts out as ``{"role", "content"}`` dicts; on follow-up
    turns the provider's own continuation messages are appended to it.
    ``tools`` holds neutral schemas (``name``, ``description``,
    ``parameters``).
    """

    model: str
    system_prompt: str = ""
    messages: list[dict] = field(default_factory=list)
    tools: list[dict] = field(default_factory=list)
    max_tokens: int | None = 1024


class ModelProvider:
    """Transport for one LLM API.

    A provider opens raw event streams and knows how to decode them and
    how to feed tool results back on a follow-up turn.  It holds no
    per-run state and may be shared by any number of concurrent runs.
    """

    system: str = "unknown"

    def new_decoder(self) -> StreamDecoder:
        raise NotImplementedError

    async def open_stream(self, request: ProviderRequest) -> AsyncIterator[Any]:
        raise NotImplementedError

    def continuation_messages(
        self, text: str, invocations: list[CompletedInvocation],
    ) -> list[dict]:
        """Messages that report *invocations* back to the model."""
        raise NotImplementedError


def _openai_tool(schema: dict) -> dict:
    return {
        "type": "function",
        "function": {
            "name": schema["name"],
            "description": schema.get("description", ""),
            "parameters": schema.get("parameters", {"type": "object", "properties": {}}),
        },
    }


class OpenAIProvider(ModelProvider):

    system = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        max_retries: int = 5,
        timeout: float = 600.0,
    ):
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        self.client = AsyncOpenAI(
            api_key=api_key,
            max_retries=max_retries,
            timeout=timeout,
        )

    def new_decoder(self) -> StreamDecoder:
        return OpenAIStreamDecoder()

    def build_kwargs(self, request: ProviderRequest) -> dict:
        messages = list(request.messages)
        if request.system_prompt:
            messages.insert(0, {"role": "system", "content": request.system_prompt})
        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "stream": True,
        }
        if request.tools:
            kwargs["tools"] = [_openai_tool(t) for t in request.tools]
            kwargs["tool_choice"] = "auto"
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens
        return kwargs

    async def open_stream(self, request: ProviderRequest) -> AsyncIterator[Any]:
        return await self.client.chat.completions.create(
            **self.build_kwargs(request)
        )

    def continuation_messages(
        self, text: str, invocations: list[CompletedInvocation],
    ) -> list[dict]:
        assistant = {
            "role": "assistant",
            "content": text or None,
            "tool_calls": [
                {
                    "id": inv.call_id,
                    "type": "function",
                    "function": {
                        "name": inv.tool_name,
                        "arguments": inv.raw_arguments or json.dumps(inv.arguments),
                    },
                }
                for inv in invocations
            ],
        }
        results = [
            {
                "role": "tool",
                "tool_call_id": inv.call_id,
                "content": inv.result_text,
            }
            for inv in invocations
        ]
        return [assistant, *results]


class OpenAICompatibleProvider(OpenAIProvider):
    """Any server speaking the OpenAI chat-completions protocol
    (vLLM, Ollama, LM Studio, ...)."""

    system = "openai_compatible"

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        max_retries: int = 5,
        timeout: float = 180.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key or "DUMMY",
            max_retries=max_retries,
            timeout=timeout,
        )


class OpenRouter(OpenAICompatibleProvider):

    system = "openrouter"

    def __init__(self, api_key: str | None = None):
        if not api_key:
            api_key = os.getenv("OPENROUTER_API_KEY")
        super().__init__(
            base_url="https://openrouter.ai/api/v1",
            api_key=api_key,
        )


class AnthropicProvider(ModelProvider):

    system = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        max_retries: int = 5,
        timeout: float = 600.0,
    ):
        if not api_key:
            api_key = os.getenv("ANTHROPIC_API_KEY")
        self.client = AsyncAnthropic(
            api_key=api_key,
            max_retries=max_retries,
            timeout=timeout,
        )

    def new_decoder(self) -> StreamDecoder:
        return AnthropicStreamDecoder()

    def build_kwargs(self, request: ProviderRequest) -> dict:
        kwargs: dict[str, Any] = {
            "model": request.model,
            # max_tokens is mandatory on the Messages API
            "max_tokens": request.max_tokens or 1024,
            "messages": list(request.messages),
            "stream": True,
        }
        if request.system_prompt:
            kwargs["system"] = request.system_prompt
        if request.tools:
            kwargs["tools"] = [
                {
                    "name": t["name"],
                    "description": t.get("description", ""),
                    "input_schema": t.get("parameters", {"type": "object", "properties": {}}),
                }
                for t in request.tools
            ]
        return kwargs

    async def open_stream(self, request: ProviderRequest) -> AsyncIterator[Any]:
        return await self.client.messages.create(**self.build_kwargs(request))

    def continuation_messages(
        self, text: str, invocations: list[CompletedInvocation],
    ) -> list[dict]:
        content: list[dict] = []
        if text:
            content.append({"type": "text", "text": text})
        content.extend(
            {
                "type": "tool_use",
                "id": inv.call_id,
                "name": inv.tool_name,
                "input": inv.arguments if isinstance(inv.arguments, dict) else {},
            }
            for inv in invocations
        )
        results = [
            {
                "type": "tool_result",
                "tool_use_id": inv.call_id,
                "content": inv.result_text,
                "is_error": inv.is_error,
            }
            for inv in invocations
        ]
        return [
            {"role": "assistant", "content": content},
            {"role": "user", "content": results},
        ]


class ParrotProvider(ModelProvider):
    """Offline provider that repeats the latest user message back.

    Useful for exercising chat plumbing without API keys or costs.  The
    reply is prefixed with a random number in parentheses unless
    ``prefix_numbers`` is off, and streamed one word at a time.
    """

    system = "parrot"

    def __init__(self, prefix_numbers: bool = True):
        self.prefix_numbers = prefix_numbers

    def new_decoder(self) -> StreamDecoder:
        return TextStreamDecoder()

    async def open_stream(self, request: ProviderRequest) -> AsyncIterator[Any]:
        last_user = next(
            (m.get("content", "") for m in reversed(request.messages)
             if m.get("role") == "user"),
            "",
        )
        reply = str(last_user)
        if self.prefix_numbers:
            reply = f"({random.randint(0, 9999)}) {reply}"
        return self._words(reply)

    async def _words(self, reply: str) -> AsyncIterator[str]:
        words = reply.split(" ")
        for i, word in enumerate(words):
            yield word if i == len(words) - 1 else f"{word} "

    def continuation_messages(
        self, text: str, invocations: list[CompletedInvocation],
    ) -> list[dict]:
        return []
