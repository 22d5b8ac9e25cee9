"""
Groq Provider
=============

Adapter for Groq's OpenAI-compatible chat completions endpoint.

Streaming responses are server-sent events:

    data: {"choices": [{"delta": {"content": "Hel"}}]}
    data: {"choices": [{"delta": {"tool_calls": [{"index": 0, ...}]}}]}
    data: [DONE]

Tool calls arrive in fragments keyed by ``index``: the first fragment
carries the id and function name, later ones append to the JSON arguments
string. Fragments are accumulated and each completed call is pushed to the
sink once the stream ends.
"""

from aether_agents.inference.providers.base import (
    HttpProvider,
    ToolCallFragments,
    chat_finish_reason,
    expect_dict,
    expect_list,
    invalid_response,
    make_tool_call,
    parse_json,
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
DEFAULT_BASE_URL = "https://api.groq.com/openai/v1"

SSE_PREFIX = "data:"
SSE_DONE = "[DONE]"


def _usage(data: dict) -> TokenUsage | None:
    # Groq reports streaming usage under x_groq on the last chunk
    x_groq = data.get("x_groq")
    usage = data.get("usage") or (x_groq.get("usage") if isinstance(x_groq, dict) else None)
    if not isinstance(usage, dict):
        return None
    return TokenUsage(
        prompt_tokens=usage.get("prompt_tokens", 0),
        completion_tokens=usage.get("completion_tokens", 0),
        total_tokens=usage.get("total_tokens", 0),
    )


class GroqProvider(HttpProvider):
    """Groq-hosted open models, authenticated with a bearer token."""

    id = "groq"
    name = "Groq"
    features = frozenset({
        ProviderFeature.STREAMING,
        ProviderFeature.TOOL_CALLING,
        ProviderFeature.SYSTEM_MESSAGES,
        ProviderFeature.JSON_MODE,
    })
    models = [
        ModelInfo(
            id="llama-3.3-70b-versatile",
            name="Llama 3.3 70B",
            description="Meta's most capable Llama model",
            context_window=128_000,
            max_output_tokens=8192,
            features=["streaming", "tool_calling"],
        ),
        ModelInfo(
            id="llama-3.1-8b-instant",
            name="Llama 3.1 8B (Instant)",
            description="Fast and efficient Llama model",
            context_window=128_000,
            max_output_tokens=8192,
            features=["streaming"],
        ),
    ]

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 60.0, transport=None):
        super().__init__(base_url, timeout, transport)

    @property
    def url(self) -> str:
        return f"{self.base_url}/chat/completions"

    @staticmethod
    def _headers(api_key: str) -> dict:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def parse_response(self, data) -> InferenceResponse:
        if not isinstance(data, dict) or not data.get("choices"):
            raise invalid_response("response has no choices", body=str(data))

        choice = expect_dict(expect_list(data["choices"], "choices")[0], "choice")
        message = expect_dict(choice.get("message") or {}, "message")

        calls = []
        for raw in expect_list(message.get("tool_calls"), "tool_calls"):
            raw = expect_dict(raw, "tool call")
            function = expect_dict(raw.get("function") or {}, "tool call function")
            calls.append(make_tool_call(function.get("name", ""), function.get("arguments"), raw.get("id")))

        content = message.get("content") or ""
        if not isinstance(content, str):
            raise invalid_response("message content must be a string", body=str(data))

        return InferenceResponse(
            content=content,
            tool_calls=calls,
            finish_reason=chat_finish_reason(choice.get("finish_reason"), bool(calls)),
            usage=_usage(data) or TokenUsage(),
            metadata={"id": data["id"]} if data.get("id") else {},
        )

    async def generate(self, request: GenerateRequest) -> InferenceResponse:
        data = await self._post_json(
            self.url,
            to_chat_payload(request),
            headers=self._headers(request.api_key),
        )
        return self.parse_response(data)

    async def stream(self, request: GenerateRequest, sink: StreamSink) -> InferenceResponse:
        text = []
        fragments: dict[int, ToolCallFragments] = {}
        raw_finish = None
        usage = TokenUsage()

        async with self._stream_lines(
            self.url,
            to_chat_payload(request, stream=True),
            headers=self._headers(request.api_key),
        ) as lines:
            async for line in lines:
                if not line.startswith(SSE_PREFIX):
                    continue
                data = line[len(SSE_PREFIX):].strip()
                if data == SSE_DONE:
                    break

                event = parse_json(data)
                if not isinstance(event, dict):
                    raise invalid_response("stream event is not an object", body=data)
                chunk_usage = _usage(event)
                if chunk_usage is not None:
                    usage = chunk_usage

                for choice in expect_list(event.get("choices"), "choices"):
                    choice = expect_dict(choice, "choice")
                    delta = expect_dict(choice.get("delta") or {}, "delta")
                    if delta.get("content"):
                        if not isinstance(delta["content"], str):
                            raise invalid_response("delta content must be a string", body=data)
                        text.append(delta["content"])
                        sink(StreamChunk(delta=delta["content"]))

                    for fragment in expect_list(delta.get("tool_calls"), "tool_calls"):
                        fragment = expect_dict(fragment, "tool call fragment")
                        function = expect_dict(fragment.get("function") or {}, "tool call function")
                        index = fragment.get("index", 0)
                        if not isinstance(index, int):
                            raise invalid_response("tool call fragment index must be an integer", body=data)
                        fragments.setdefault(index, ToolCallFragments()).add(
                            fragment.get("id"), function.get("name"), function.get("arguments")
                        )

                    if choice.get("finish_reason"):
                        raw_finish = choice["finish_reason"]

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
