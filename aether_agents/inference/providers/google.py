"""
Google Gemini Provider
======================

Adapter for the Gemini ``generateContent`` REST API.

Wire mapping:
    system message      -> systemInstruction
    user message        -> {"role": "user", "parts": [{"text": ...}]}
    assistant message   -> {"role": "model", "parts": [text, functionCall...]}
    tool message        -> {"role": "user", "parts": [{"functionResponse": ...}]}
    tool definitions    -> tools[0].functionDeclarations

Streaming uses ``streamGenerateContent?alt=sse``: each server-sent event
carries one GenerateContentResponse object on its ``data:`` line.
"""

import json

from aether_agents.inference.providers.base import (
    HttpProvider,
    expect_dict,
    expect_list,
    invalid_response,
    make_tool_call,
    parse_json,
)
from aether_agents.inference.types import (
    FinishReason,
    GenerateRequest,
    InferenceMessage,
    InferenceResponse,
    ModelInfo,
    ProviderFeature,
    StreamChunk,
    StreamSink,
    TokenUsage,
)
from aether_agents.tools import ToolCall

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

SSE_PREFIX = "data:"

_FINISH_REASONS = {
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.MAX_TOKENS,
    "SAFETY": FinishReason.CONTENT_FILTER,
    "RECITATION": FinishReason.CONTENT_FILTER,
    "BLOCKLIST": FinishReason.CONTENT_FILTER,
    "PROHIBITED_CONTENT": FinishReason.CONTENT_FILTER,
    "SPII": FinishReason.CONTENT_FILTER,
}


def _tool_response(content: str) -> dict:
    # functionResponse.response must be an object
    try:
        value = json.loads(content)
    except ValueError:
        value = content
    return value if isinstance(value, dict) else {"result": value}


class GoogleProvider(HttpProvider):
    """Gemini models over plain HTTPS, authenticated with an API key query parameter."""

    id = "google"
    name = "Google Gemini"
    features = frozenset({
        ProviderFeature.STREAMING,
        ProviderFeature.TOOL_CALLING,
        ProviderFeature.SYSTEM_MESSAGES,
    })
    models = [
        ModelInfo(
            id="gemini-2.0-flash-exp",
            name="Gemini 2.0 Flash (Experimental)",
            description="Fastest Gemini model with experimental features",
            context_window=1_000_000,
            max_output_tokens=8192,
            features=["streaming", "tool_calling"],
        ),
        ModelInfo(
            id="gemini-1.5-pro",
            name="Gemini 1.5 Pro",
            description="Most capable Gemini model",
            context_window=1_000_000,
            max_output_tokens=8192,
            features=["streaming", "tool_calling", "vision"],
        ),
    ]

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 60.0, transport=None):
        super().__init__(base_url, timeout, transport)

    # ==========================================================================
    # Request
    # ==========================================================================

    def _contents(self, messages: list[InferenceMessage]) -> tuple[list[dict], str]:
        contents = []
        system_parts = []
        # Gemini names a functionResponse after the function, not the call id
        call_names: dict[str, str] = {}

        for message in messages:
            if message.role == "system":
                system_parts.append(message.content)
            elif message.role == "assistant":
                parts = [{"text": message.content}] if message.content else []
                for call in message.tool_calls:
                    call_names[call.id] = call.name
                    parts.append({"functionCall": {"name": call.name, "args": call.arguments}})
                contents.append({"role": "model", "parts": parts or [{"text": ""}]})
            elif message.role == "tool":
                name = message.name or call_names.get(message.tool_call_id or "", "tool")
                contents.append({
                    "role": "user",
                    "parts": [{
                        "functionResponse": {"name": name, "response": _tool_response(message.content)}
                    }],
                })
            else:
                contents.append({"role": "user", "parts": [{"text": message.content}]})

        return contents, "\n\n".join(system_parts)

    def build_payload(self, request: GenerateRequest) -> dict:
        contents, system = self._contents(request.messages)
        params = request.parameters

        generation_config = {
            "temperature": params.temperature,
            "maxOutputTokens": params.max_tokens,
            "topP": params.top_p,
        }
        if params.stop_sequences:
            generation_config["stopSequences"] = params.stop_sequences

        payload = {"contents": contents, "generationConfig": generation_config}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if request.tools:
            payload["tools"] = [{
                "functionDeclarations": [
                    {"name": t.name, "description": t.description, "parameters": t.parameters}
                    for t in request.tools
                ]
            }]
        return payload

    def _url(self, model: str, method: str) -> str:
        return f"{self.base_url}/models/{model}:{method}"

    # ==========================================================================
    # Response
    # ==========================================================================

    @staticmethod
    def _usage(data: dict) -> TokenUsage | None:
        usage = data.get("usageMetadata")
        if not isinstance(usage, dict):
            return None
        prompt = usage.get("promptTokenCount", 0)
        completion = usage.get("candidatesTokenCount", 0)
        return TokenUsage(prompt, completion, usage.get("totalTokenCount", prompt + completion))

    @staticmethod
    def _candidate(data) -> tuple[str, list[ToolCall], str | None]:
        if not isinstance(data, dict):
            raise invalid_response("expected a JSON object", body=str(data))

        candidates = expect_list(data.get("candidates"), "candidates")
        if not candidates:
            feedback = expect_dict(data.get("promptFeedback") or {}, "promptFeedback")
            if feedback.get("blockReason"):
                return "", [], "SAFETY"
            if "usageMetadata" in data:
                return "", [], None
            raise invalid_response("response has no candidates", body=json.dumps(data))

        candidate = expect_dict(candidates[0], "candidate")
        content = expect_dict(candidate.get("content") or {}, "candidate content")
        text = []
        calls = []
        for part in expect_list(content.get("parts"), "parts"):
            part = expect_dict(part, "part")
            if "text" in part:
                if not isinstance(part["text"], str):
                    raise invalid_response("text part must be a string", body=json.dumps(data))
                text.append(part["text"])
            elif "functionCall" in part:
                call = expect_dict(part["functionCall"], "functionCall")
                calls.append(make_tool_call(call.get("name", ""), call.get("args")))
        return "".join(text), calls, candidate.get("finishReason")

    @staticmethod
    def _finish(raw: str | None, has_calls: bool) -> FinishReason:
        if has_calls:
            return FinishReason.TOOL_CALLS
        if raw is None:
            return FinishReason.STOP
        if not isinstance(raw, str):
            raise invalid_response(f"finish reason must be a string, got {type(raw).__name__}")
        return _FINISH_REASONS.get(raw, FinishReason.OTHER)

    def parse_response(self, data) -> InferenceResponse:
        content, calls, raw_finish = self._candidate(data)
        return InferenceResponse(
            content=content,
            tool_calls=calls,
            finish_reason=self._finish(raw_finish, bool(calls)),
            usage=self._usage(data) or TokenUsage(),
            metadata={"model_version": data.get("modelVersion")} if data.get("modelVersion") else {},
        )

    # ==========================================================================
    # Calls
    # ==========================================================================

    async def generate(self, request: GenerateRequest) -> InferenceResponse:
        data = await self._post_json(
            self._url(request.model, "generateContent"),
            self.build_payload(request),
            params={"key": request.api_key},
        )
        return self.parse_response(data)

    async def stream(self, request: GenerateRequest, sink: StreamSink) -> InferenceResponse:
        text = []
        calls: list[ToolCall] = []
        raw_finish = None
        usage = TokenUsage()

        async with self._stream_lines(
            self._url(request.model, "streamGenerateContent"),
            self.build_payload(request),
            params={"key": request.api_key, "alt": "sse"},
        ) as lines:
            async for line in lines:
                if not line.startswith(SSE_PREFIX):
                    continue
                line = line[len(SSE_PREFIX):].strip()
                if not line:
                    continue

                data = parse_json(line)
                content, new_calls, finish = self._candidate(data)
                chunk_usage = self._usage(data)
                if chunk_usage is not None:
                    usage = chunk_usage
                if finish is not None:
                    raw_finish = finish

                if content:
                    text.append(content)
                    sink(StreamChunk(delta=content))
                for call in new_calls:
                    calls.append(call)
                    sink(StreamChunk(tool_call=call))

        finish_reason = self._finish(raw_finish, bool(calls))
        sink(StreamChunk(is_final=True, finish_reason=finish_reason, usage=usage))
        return InferenceResponse(
            content="".join(text),
            tool_calls=calls,
            finish_reason=finish_reason,
            usage=usage,
        )
