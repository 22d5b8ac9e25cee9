"""
Provider Base
=============

Every model backend implements ModelProvider. HTTP backends build on
HttpProvider, which owns the httpx plumbing and maps transport failures onto
ProviderError so adapters only deal with payloads.

Error mapping:
    401 / 403            -> ProviderError(AUTH)
    any other non-2xx    -> ProviderError(HTTP), raw body attached
    request timed out    -> ProviderError(TIMEOUT)
    connection failures  -> ProviderError(HTTP)
    unparseable payload  -> ProviderError(INVALID_RESPONSE)
"""

import json
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx

from aether_agents.errors import ProviderError, ProviderErrorKind
from aether_agents.inference.types import (
    FinishReason,
    GenerateRequest,
    InferenceMessage,
    InferenceResponse,
    ModelInfo,
    ProviderFeature,
    StreamSink,
)
from aether_agents.tools import ToolCall, ToolDefinition
from aether_agents.utils.logger import Logger


class ModelProvider(ABC):
    """A model backend speaking the uniform request/response contract."""

    id: str = ""
    name: str = ""
    features: frozenset[ProviderFeature] = frozenset()
    models: list[ModelInfo] = []

    @abstractmethod
    async def generate(self, request: GenerateRequest) -> InferenceResponse:
        """Run one completion."""

    @abstractmethod
    async def stream(self, request: GenerateRequest, sink: StreamSink) -> InferenceResponse:
        """
        Run one completion, pushing deltas into ``sink`` as they arrive.

        The sink sees exactly one chunk with is_final=True, last. The
        accumulated response is returned as well.
        """

    def supports_feature(self, feature: ProviderFeature) -> bool:
        return ProviderFeature(feature) in self.features

    async def list_models(self) -> list[ModelInfo]:
        return list(self.models)


def invalid_response(message: str, body: str | None = None) -> ProviderError:
    return ProviderError(ProviderErrorKind.INVALID_RESPONSE, message, body=body)


def parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise invalid_response(f"response is not valid JSON: {e}", body=text) from None


def expect_dict(value: Any, what: str) -> dict:
    """Reject a payload node that should be a JSON object."""
    if not isinstance(value, dict):
        raise invalid_response(f"{what} must be an object, got {type(value).__name__}", body=str(value))
    return value


def expect_list(value: Any, what: str) -> list:
    """Reject a payload node that should be a JSON array; null reads as empty."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise invalid_response(f"{what} must be an array, got {type(value).__name__}", body=str(value))
    return value


def parse_arguments(raw: Any) -> dict:
    """
    Tool-call arguments arrive as a JSON string or an object.

    Raises:
        ValueError: The arguments are not a JSON object
    """
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        raise ValueError(f"tool arguments are not valid JSON: {raw!r}") from None
    if not isinstance(value, dict):
        raise ValueError(f"tool arguments must be an object: {raw!r}")
    return value


def make_tool_call(name: Any, raw_arguments: Any, call_id: Any = None) -> ToolCall:
    """
    Build a ToolCall from wire fields.

    Undecodable arguments do not fail the response: the call carries
    ``arguments_error`` instead, so the model is told about it in a tool
    message and can retry.
    """
    if not isinstance(name, str):
        raise invalid_response(f"tool call name must be a string, got {type(name).__name__}")

    try:
        call = ToolCall(name=name, arguments=parse_arguments(raw_arguments))
    except ValueError as e:
        call = ToolCall(name=name, arguments_error=str(e))
    if isinstance(call_id, str) and call_id:
        call.id = call_id
    return call


class HttpProvider(ModelProvider):
    """
    Shared httpx plumbing for HTTP adapters.

    A client is opened per request, the same way the other HTTP integrations
    in this package work. Pass ``transport`` (e.g. httpx.MockTransport) to
    route requests somewhere other than the network.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self.logger = Logger(f"Provider:{self.id}")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _check_status(self, response: httpx.Response, body: str) -> None:
        if response.is_success:
            return

        kind = ProviderErrorKind.AUTH if response.status_code in (401, 403) else ProviderErrorKind.HTTP
        self.logger.error(f"{self.name} API error: {response.status_code}", data={"body": body[:500]})
        raise ProviderError(
            kind,
            f"{self.name} returned HTTP {response.status_code}",
            body=body,
            status_code=response.status_code,
        )

    async def _post_json(
        self,
        url: str,
        payload: dict,
        headers: dict | None = None,
        params: dict | None = None
    ) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        try:
            async with self._client() as client:
                response = await client.post(url, json=payload, headers=headers, params=params)
        except httpx.TimeoutException:
            raise ProviderError(ProviderErrorKind.TIMEOUT, f"{self.name} request timed out") from None
        except httpx.HTTPError as e:
            raise ProviderError(ProviderErrorKind.HTTP, f"{self.name} request failed: {e}") from e

        self._check_status(response, response.text)
        return parse_json(response.text)

    @asynccontextmanager
    async def _stream_lines(
        self,
        url: str,
        payload: dict,
        headers: dict | None = None,
        params: dict | None = None
    ) -> AsyncIterator[AsyncIterator[str]]:
        """POST a JSON body and yield an iterator over the response lines."""
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", url, json=payload, headers=headers, params=params
                ) as response:
                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        self._check_status(response, body)
                    yield response.aiter_lines()
        except httpx.TimeoutException:
            raise ProviderError(ProviderErrorKind.TIMEOUT, f"{self.name} stream timed out") from None
        except httpx.HTTPError as e:
            raise ProviderError(ProviderErrorKind.HTTP, f"{self.name} stream failed: {e}") from e


# ==============================================================================
# OpenAI-compatible chat schema (shared by Groq and OpenAI)
# ==============================================================================

_CHAT_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.MAX_TOKENS,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "content_filter": FinishReason.CONTENT_FILTER,
}


def chat_finish_reason(raw: str | None, has_calls: bool = False) -> FinishReason:
    if raw is None:
        return FinishReason.TOOL_CALLS if has_calls else FinishReason.STOP
    if not isinstance(raw, str):
        raise invalid_response(f"finish reason must be a string, got {type(raw).__name__}")
    return _CHAT_FINISH_REASONS.get(raw, FinishReason.OTHER)


def to_chat_messages(messages: list[InferenceMessage]) -> list[dict]:
    """Translate the prompt into chat-completions messages."""
    result = []
    for message in messages:
        entry: dict[str, Any] = {"role": message.role, "content": message.content}
        if message.role == "assistant" and message.tool_calls:
            entry["content"] = message.content or None
            entry["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in message.tool_calls
            ]
        if message.role == "tool":
            entry["tool_call_id"] = message.tool_call_id
        result.append(entry)
    return result


def to_chat_tools(tools: list[ToolDefinition]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            },
        }
        for tool in tools
    ]


def to_chat_payload(request: GenerateRequest, stream: bool = False) -> dict:
    params = request.parameters
    payload: dict[str, Any] = {
        "model": request.model,
        "messages": to_chat_messages(request.messages),
        "temperature": params.temperature,
        "max_tokens": params.max_tokens,
        "top_p": params.top_p,
        "stream": stream,
    }
    if params.stop_sequences:
        payload["stop"] = params.stop_sequences
    if request.tools:
        payload["tools"] = to_chat_tools(request.tools)
        payload["tool_choice"] = "auto"
    return payload


@dataclass
class ToolCallFragments:
    """Accumulates one streamed tool call: id and name first, arguments in pieces."""
    id: str | None = None
    name: str = ""
    arguments: list[str] = field(default_factory=list)

    def add(self, call_id: Any, name: Any, arguments: Any) -> None:
        for value in (call_id, name, arguments):
            if value is not None and not isinstance(value, str):
                raise invalid_response(f"tool call fragment field must be a string: {value!r}")
        if call_id:
            self.id = call_id
        if name:
            self.name += name
        if arguments:
            self.arguments.append(arguments)

    def build(self) -> ToolCall:
        return make_tool_call(self.name, "".join(self.arguments), self.id)
