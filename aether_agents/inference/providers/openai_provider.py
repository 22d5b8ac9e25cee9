"""
OpenAI Provider
===============

Adapter for OpenAI chat completions through the official ``openai`` SDK.

The SDK handles transport and retries; this adapter only maps the uniform
request onto ``chat.completions.create`` and SDK exceptions onto
ProviderError. A client is built per call because the API key is resolved
per session, and closed again when the call finishes.
"""

from typing import Any, Callable

import openai
from openai import AsyncOpenAI

from aether_agents.errors import ProviderError, ProviderErrorKind
from aether_agents.inference.providers.base import (
    ModelProvider,
    ToolCallFragments,
    chat_finish_reason,
    invalid_response,
    make_tool_call,
    to_chat_payload,
)
from aether_agents.inference.types import (
    GenerateRequest,
    InferenceResponse,
    ModelInfo,
    ProviderFeature,
    StreamChunk,
    StreamSink,
    TokenUsage,
)
from aether_agents.utils.logger import Logger

logger = Logger("Provider:openai")


def _usage(usage: Any) -> TokenUsage:
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=usage.prompt_tokens or 0,
        completion_tokens=usage.completion_tokens or 0,
        total_tokens=usage.total_tokens or 0,
    )


class OpenAIProvider(ModelProvider):
    """
    OpenAI models via AsyncOpenAI.

    Args:
        base_url: Override the API base (None uses the SDK default)
        timeout: Seconds per request
        client_factory: Builds the client from an API key; tests pass one
            returning a mock
    """

    id = "openai"
    name = "OpenAI"
    features = frozenset({
        ProviderFeature.STREAMING,
        ProviderFeature.TOOL_CALLING,
        ProviderFeature.SYSTEM_MESSAGES,
        ProviderFeature.JSON_MODE,
        ProviderFeature.VISION,
    })
    models = [
        ModelInfo(
            id="gpt-4o",
            name="GPT-4o",
            description="Flagship multimodal model",
            context_window=128_000,
            max_output_tokens=16_384,
            features=["streaming", "tool_calling", "vision", "json_mode"],
        ),
        ModelInfo(
            id="gpt-4o-mini",
            name="GPT-4o mini",
            description="Small, fast and inexpensive",
            context_window=128_000,
            max_output_tokens=16_384,
            features=["streaming", "tool_calling", "vision", "json_mode"],
        ),
    ]

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = 60.0,
        client_factory: Callable[[str], Any] | None = None
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._client_factory = client_factory or self._default_client

    def _default_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, base_url=self.base_url, timeout=self.timeout)

    @staticmethod
    def _translate(error: openai.OpenAIError) -> ProviderError:
        if isinstance(error, openai.APITimeoutError):
            return ProviderError(ProviderErrorKind.TIMEOUT, "OpenAI request timed out")
        if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return ProviderError(
                ProviderErrorKind.AUTH,
                str(error),
                body=error.response.text,
                status_code=error.status_code,
            )
        if isinstance(error, openai.APIStatusError):
            return ProviderError(
                ProviderErrorKind.HTTP,
                f"OpenAI returned HTTP {error.status_code}",
                body=error.response.text,
                status_code=error.status_code,
            )
        return ProviderError(ProviderErrorKind.HTTP, f"OpenAI request failed: {error}")

    def parse_completion(self, completion: Any) -> InferenceResponse:
        if not getattr(completion, "choices", None):
            raise invalid_response("completion has no choices")

        choice = completion.choices[0]
        message = choice.message

        calls = []
        for raw in message.tool_calls or []:
            calls.append(make_tool_call(raw.function.name, raw.function.arguments, raw.id))

        return InferenceResponse(
            content=message.content or "",
            tool_calls=calls,
            finish_reason=chat_finish_reason(choice.finish_reason, bool(calls)),
            usage=_usage(completion.usage),
            metadata={"id": completion.id} if getattr(completion, "id", None) else {},
        )

    async def generate(self, request: GenerateRequest) -> InferenceResponse:
        client = self._client_factory(request.api_key)
        try:
            completion = await client.chat.completions.create(**to_chat_payload(request))
        except openai.OpenAIError as e:
            logger.error("OpenAI request failed", e)
            raise self._translate(e) from e
        finally:
            await client.close()
        return self.parse_completion(completion)

    async def stream(self, request: GenerateRequest, sink: StreamSink) -> InferenceResponse:
        client = self._client_factory(request.api_key)
        text = []
        fragments: dict[int, ToolCallFragments] = {}
        raw_finish = None
        usage = TokenUsage()

        try:
            stream = await client.chat.completions.create(
                **to_chat_payload(request, stream=True),
                stream_options={"include_usage": True},
            )
            async for chunk in stream:
                if getattr(chunk, "usage", None) is not None:
                    usage = _usage(chunk.usage)

                for choice in chunk.choices or []:
                    delta = choice.delta
                    if delta.content:
                        text.append(delta.content)
                        sink(StreamChunk(delta=delta.content))

                    for fragment in delta.tool_calls or []:
                        function = fragment.function
                        fragments.setdefault(fragment.index, ToolCallFragments()).add(
                            fragment.id,
                            function.name if function else None,
                            function.arguments if function else None,
                        )

                    if choice.finish_reason:
                        raw_finish = choice.finish_reason
        except openai.OpenAIError as e:
            logger.error("OpenAI stream failed", e)
            raise self._translate(e) from e
        finally:
            await client.close()

        calls = [fragments[index].build() for index in sorted(fragments)]
        for call in calls:
            sink(StreamChunk(tool_call=call))

        finish_reason = chat_finish_reason(raw_finish, bool(calls))
        sink(StreamChunk(is_final=True, finish_reason=finish_reason, usage=usage))
        return InferenceResponse(
            content="".join(text),
            tool_calls=calls,
            finish_reason=finish_reason,
            usage=usage,
        )
