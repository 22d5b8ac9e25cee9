import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from aether_agents.errors import ProviderError, ProviderErrorKind, RateLimitExceeded
from aether_agents.inference import InferenceClient, InferenceMessage
from aether_agents.inference.providers import GoogleProvider, GroqProvider, OpenAIProvider
from aether_agents.inference.rate_limiter import RateLimiter
from aether_agents.inference.types import (
    FinishReason,
    GenerateRequest,
    GenerationParameters,
    ProviderFeature,
)
from aether_agents.tools import ToolCall, ToolDefinition

from conftest import ScriptedProvider, reply

WEATHER = ToolDefinition(
    name="get_weather",
    description="Weather for a city",
    parameters={"type": "object", "properties": {"city": {"type": "string"}}, "required": ["city"]},
)


def request(*messages: InferenceMessage, tools=None) -> GenerateRequest:
    return GenerateRequest(
        model="test-model",
        messages=list(messages) or [InferenceMessage("user", "Hello")],
        tools=tools or [],
        parameters=GenerationParameters(temperature=0.2, max_tokens=256),
        api_key="secret",
    )


def collect():
    chunks = []
    return chunks, chunks.append


# ==============================================================================
# Google
# ==============================================================================

def test_google_payload_mapping():
    call = ToolCall(name="get_weather", arguments={"city": "Oslo"}, id="call_1")
    payload = GoogleProvider().build_payload(request(
        InferenceMessage("system", "Be brief"),
        InferenceMessage("user", "Weather?"),
        InferenceMessage("assistant", "", tool_calls=[call]),
        InferenceMessage("tool", '{"temp": 3}', tool_call_id="call_1"),
        tools=[WEATHER],
    ))

    assert payload["systemInstruction"] == {"parts": [{"text": "Be brief"}]}
    assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
    assert payload["contents"][1]["parts"] == [{"functionCall": {"name": "get_weather", "args": {"city": "Oslo"}}}]
    assert payload["contents"][2]["parts"][0]["functionResponse"] == {
        "name": "get_weather",
        "response": {"temp": 3},
    }
    assert payload["generationConfig"]["maxOutputTokens"] == 256
    assert payload["tools"][0]["functionDeclarations"][0]["name"] == "get_weather"


@pytest.mark.asyncio
async def test_google_generate():
    seen = {}

    def handler(req: httpx.Request) -> httpx.Response:
        seen["url"] = str(req.url)
        return httpx.Response(200, json={
            "candidates": [{
                "content": {"parts": [{"text": "Hi "}, {"text": "there"}]},
                "finishReason": "STOP",
            }],
            "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 2, "totalTokenCount": 6},
        })

    provider = GoogleProvider(base_url="https://gemini.test/v1beta", transport=httpx.MockTransport(handler))
    response = await provider.generate(request())

    assert response.content == "Hi there"
    assert response.finish_reason is FinishReason.STOP
    assert response.usage.total_tokens == 6
    assert seen["url"] == "https://gemini.test/v1beta/models/test-model:generateContent?key=secret"


@pytest.mark.asyncio
async def test_google_function_call_response():
    def handler(req):
        return httpx.Response(200, json={
            "candidates": [{
                "content": {"parts": [{"functionCall": {"name": "get_weather", "args": {"city": "Oslo"}}}]},
                "finishReason": "STOP",
            }],
        })

    provider = GoogleProvider(transport=httpx.MockTransport(handler))
    response = await provider.generate(request(tools=[WEATHER]))

    assert response.finish_reason is FinishReason.TOOL_CALLS
    assert response.tool_calls[0].name == "get_weather"
    assert response.tool_calls[0].arguments == {"city": "Oslo"}


@pytest.mark.asyncio
async def test_google_safety_finish_maps_to_content_filter():
    def handler(req):
        return httpx.Response(200, json={"candidates": [{"content": {"parts": []}, "finishReason": "SAFETY"}]})

    provider = GoogleProvider(transport=httpx.MockTransport(handler))
    response = await provider.generate(request())

    assert response.finish_reason is FinishReason.CONTENT_FILTER


@pytest.mark.asyncio
async def test_google_missing_candidates_is_invalid_response():
    provider = GoogleProvider(transport=httpx.MockTransport(lambda req: httpx.Response(200, json={})))

    with pytest.raises(ProviderError) as exc_info:
        await provider.generate(request())

    assert exc_info.value.kind is ProviderErrorKind.INVALID_RESPONSE


@pytest.mark.asyncio
async def test_google_stream():
    events = [
        {"candidates": [{"content": {"parts": [{"text": "Hel"}]}}]},
        {
            "candidates": [{"content": {"parts": [{"text": "lo"}]}, "finishReason": "STOP"}],
            "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 2, "totalTokenCount": 5},
        },
    ]
    body = "".join(f"data: {json.dumps(e)}\r\n\r\n" for e in events)
    seen = {}

    def handler(req: httpx.Request) -> httpx.Response:
        seen["url"] = str(req.url)
        return httpx.Response(200, text=body, headers={"Content-Type": "text/event-stream"})

    provider = GoogleProvider(base_url="https://gemini.test/v1beta", transport=httpx.MockTransport(handler))
    chunks, sink = collect()

    response = await provider.stream(request(), sink)

    assert seen["url"] == "https://gemini.test/v1beta/models/test-model:streamGenerateContent?key=secret&alt=sse"
    assert [c.delta for c in chunks if c.delta] == ["Hel", "lo"]
    assert chunks[-1].is_final
    assert sum(1 for c in chunks if c.is_final) == 1
    assert response.content == "Hello"
    assert response.usage.total_tokens == 5


@pytest.mark.parametrize("payload", [
    {"candidates": ["not a candidate"]},
    {"candidates": "nope"},
    {"promptFeedback": None},
    {"candidates": [{"content": "text"}]},
    {"candidates": [{"content": {"parts": "text"}}]},
    {"candidates": [{"content": {"parts": ["text"]}}]},
    {"candidates": [{"content": {"parts": [{"functionCall": "get_weather"}]}}]},
    {"candidates": [{"content": {"parts": [{"text": 42}]}}]},
    {"candidates": [{"content": {"parts": [{"functionCall": {"name": 7}}]}}]},
])
@pytest.mark.asyncio
async def test_google_malformed_payload_is_invalid_response(payload):
    provider = GoogleProvider(transport=httpx.MockTransport(lambda req: httpx.Response(200, json=payload)))

    with pytest.raises(ProviderError) as exc_info:
        await provider.generate(request())

    assert exc_info.value.kind is ProviderErrorKind.INVALID_RESPONSE


# ==============================================================================
# Groq
# ==============================================================================

@pytest.mark.asyncio
async def test_groq_generate_sends_chat_payload():
    seen = {}

    def handler(req: httpx.Request) -> httpx.Response:
        seen["auth"] = req.headers["Authorization"]
        seen["body"] = json.loads(req.content)
        return httpx.Response(200, json={
            "id": "chatcmpl-1",
            "choices": [{
                "message": {
                    "content": None,
                    "tool_calls": [{
                        "id": "call_abc",
                        "type": "function",
                        "function": {"name": "get_weather", "arguments": '{"city": "Oslo"}'},
                    }],
                },
                "finish_reason": "tool_calls",
            }],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        })

    provider = GroqProvider(transport=httpx.MockTransport(handler))
    response = await provider.generate(request(tools=[WEATHER]))

    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["model"] == "test-model"
    assert seen["body"]["tool_choice"] == "auto"
    assert seen["body"]["tools"][0]["function"]["name"] == "get_weather"
    assert response.finish_reason is FinishReason.TOOL_CALLS
    assert response.tool_calls[0].id == "call_abc"
    assert response.tool_calls[0].arguments == {"city": "Oslo"}
    assert response.usage.total_tokens == 15


@pytest.mark.asyncio
async def test_groq_length_finish():
    def handler(req):
        return httpx.Response(200, json={"choices": [{"message": {"content": "cut"}, "finish_reason": "length"}]})

    provider = GroqProvider(transport=httpx.MockTransport(handler))
    response = await provider.generate(request())

    assert response.finish_reason is FinishReason.MAX_TOKENS


@pytest.mark.asyncio
async def test_groq_unauthorized_is_auth_error():
    provider = GroqProvider(transport=httpx.MockTransport(
        lambda req: httpx.Response(401, json={"error": {"message": "Invalid API Key"}})
    ))

    with pytest.raises(ProviderError) as exc_info:
        await provider.generate(request())

    assert exc_info.value.kind is ProviderErrorKind.AUTH
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_groq_undecodable_arguments_stay_on_the_call():
    def handler(req):
        return httpx.Response(200, json={"choices": [{
            "message": {"tool_calls": [{
                "id": "call_bad",
                "type": "function",
                "function": {"name": "get_weather", "arguments": "{city: Oslo"},
            }]},
            "finish_reason": "tool_calls",
        }]})

    provider = GroqProvider(transport=httpx.MockTransport(handler))
    response = await provider.generate(request(tools=[WEATHER]))

    call = response.tool_calls[0]
    assert call.id == "call_bad"
    assert call.arguments == {}
    assert "not valid JSON" in call.arguments_error


@pytest.mark.parametrize("payload", [
    {"choices": "nope"},
    {"choices": ["not a choice"]},
    {"choices": [{"message": "oops"}]},
    {"choices": [{"message": {"content": ["a", "b"]}}]},
    {"choices": [{"message": {"tool_calls": "get_weather"}}]},
    {"choices": [{"message": {"tool_calls": ["get_weather"]}}]},
    {"choices": [{"message": {"tool_calls": [{"function": "get_weather"}]}}]},
    {"choices": [{"message": {"content": "hi"}, "finish_reason": ["stop"]}]},
])
@pytest.mark.asyncio
async def test_groq_malformed_payload_is_invalid_response(payload):
    provider = GroqProvider(transport=httpx.MockTransport(lambda req: httpx.Response(200, json=payload)))

    with pytest.raises(ProviderError) as exc_info:
        await provider.generate(request())

    assert exc_info.value.kind is ProviderErrorKind.INVALID_RESPONSE


@pytest.mark.asyncio
async def test_groq_server_error_keeps_body():
    provider = GroqProvider(transport=httpx.MockTransport(lambda req: httpx.Response(503, text="overloaded")))

    with pytest.raises(ProviderError) as exc_info:
        await provider.generate(request())

    assert exc_info.value.kind is ProviderErrorKind.HTTP
    assert exc_info.value.body == "overloaded"


@pytest.mark.asyncio
async def test_groq_timeout():
    def handler(req):
        raise httpx.ReadTimeout("slow", request=req)

    provider = GroqProvider(transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderError) as exc_info:
        await provider.generate(request())

    assert exc_info.value.kind is ProviderErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_groq_stream_accumulates_tool_call_fragments():
    events = [
        {"choices": [{"delta": {"content": "Let me check."}}]},
        {"choices": [{"delta": {"tool_calls": [
            {"index": 0, "id": "call_1", "function": {"name": "get_weather", "arguments": '{"ci'}}
        ]}}]},
        {"choices": [{"delta": {"tool_calls": [
            {"index": 0, "function": {"arguments": 'ty": "Oslo"}'}}
        ]}, "finish_reason": "tool_calls"}]},
        {"choices": [], "x_groq": {"usage": {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10}}},
    ]
    body = "".join(f"data: {json.dumps(e)}\n\n" for e in events) + "data: [DONE]\n\n"
    provider = GroqProvider(transport=httpx.MockTransport(lambda req: httpx.Response(200, text=body)))
    chunks, sink = collect()

    response = await provider.stream(request(tools=[WEATHER]), sink)

    assert chunks[0].delta == "Let me check."
    tool_chunks = [c for c in chunks if c.tool_call]
    assert len(tool_chunks) == 1
    assert tool_chunks[0].tool_call.arguments == {"city": "Oslo"}
    assert chunks[-1].is_final
    assert chunks[-1].finish_reason is FinishReason.TOOL_CALLS
    assert response.tool_calls[0].id == "call_1"
    assert response.usage.total_tokens == 10


@pytest.mark.parametrize("event", [
    {"choices": [{"delta": "Hel"}]},
    {"choices": [{"delta": {"content": 5}}]},
    {"choices": [{"delta": {"tool_calls": [{"index": "0", "function": {"name": "x"}}]}}]},
    {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"name": ["x"]}}]}}]},
])
@pytest.mark.asyncio
async def test_groq_malformed_stream_event_is_invalid_response(event):
    body = f"data: {json.dumps(event)}\n\ndata: [DONE]\n\n"
    provider = GroqProvider(transport=httpx.MockTransport(lambda req: httpx.Response(200, text=body)))
    chunks, sink = collect()

    with pytest.raises(ProviderError) as exc_info:
        await provider.stream(request(), sink)

    assert exc_info.value.kind is ProviderErrorKind.INVALID_RESPONSE


@pytest.mark.asyncio
async def test_groq_stream_error_status():
    provider = GroqProvider(transport=httpx.MockTransport(lambda req: httpx.Response(500, text="boom")))
    chunks, sink = collect()

    with pytest.raises(ProviderError) as exc_info:
        await provider.stream(request(), sink)

    assert exc_info.value.body == "boom"
    assert chunks == []


# ==============================================================================
# OpenAI
# ==============================================================================

def openai_client(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = create
    client.close = AsyncMock()
    return client


def completion(content=None, tool_calls=None, finish_reason="stop"):
    return SimpleNamespace(
        id="chatcmpl-9",
        choices=[SimpleNamespace(
            message=SimpleNamespace(content=content, tool_calls=tool_calls),
            finish_reason=finish_reason,
        )],
        usage=SimpleNamespace(prompt_tokens=8, completion_tokens=4, total_tokens=12),
    )


@pytest.mark.asyncio
async def test_openai_generate():
    create = AsyncMock(return_value=completion(content="Hello!"))
    client = openai_client(create)
    keys = []

    def factory(api_key):
        keys.append(api_key)
        return client

    provider = OpenAIProvider(client_factory=factory)
    response = await provider.generate(request())

    assert keys == ["secret"]
    assert create.await_args.kwargs["model"] == "test-model"
    assert create.await_args.kwargs["temperature"] == 0.2
    assert response.content == "Hello!"
    assert response.usage.total_tokens == 12
    assert response.metadata == {"id": "chatcmpl-9"}
    client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_openai_tool_calls():
    raw_call = SimpleNamespace(
        id="call_x",
        function=SimpleNamespace(name="get_weather", arguments='{"city": "Oslo"}'),
    )
    create = AsyncMock(return_value=completion(tool_calls=[raw_call], finish_reason="tool_calls"))
    provider = OpenAIProvider(client_factory=lambda key: openai_client(create))

    response = await provider.generate(request(tools=[WEATHER]))

    assert response.has_tool_calls
    assert response.tool_calls[0].id == "call_x"
    assert response.finish_reason is FinishReason.TOOL_CALLS


@pytest.mark.asyncio
async def test_openai_auth_error_translated():
    http_request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    error = openai.AuthenticationError(
        "Incorrect API key",
        response=httpx.Response(401, request=http_request, text='{"error": "bad key"}'),
        body=None,
    )
    client = openai_client(AsyncMock(side_effect=error))
    provider = OpenAIProvider(client_factory=lambda key: client)

    with pytest.raises(ProviderError) as exc_info:
        await provider.generate(request())

    assert exc_info.value.kind is ProviderErrorKind.AUTH
    assert exc_info.value.body == '{"error": "bad key"}'
    client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_openai_stream():
    async def chunks_from_api():
        yield SimpleNamespace(
            usage=None,
            choices=[SimpleNamespace(delta=SimpleNamespace(content="Hi", tool_calls=None), finish_reason=None)],
        )
        yield SimpleNamespace(
            usage=None,
            choices=[SimpleNamespace(delta=SimpleNamespace(content=" you", tool_calls=None), finish_reason="stop")],
        )
        yield SimpleNamespace(
            usage=SimpleNamespace(prompt_tokens=2, completion_tokens=2, total_tokens=4),
            choices=[],
        )

    create = AsyncMock(return_value=chunks_from_api())
    client = openai_client(create)
    provider = OpenAIProvider(client_factory=lambda key: client)
    chunks, sink = collect()

    response = await provider.stream(request(), sink)

    assert create.await_args.kwargs["stream"] is True
    assert [c.delta for c in chunks if c.delta] == ["Hi", " you"]
    assert chunks[-1].is_final
    assert response.content == "Hi you"
    assert response.usage.total_tokens == 4
    client.close.assert_awaited_once()


# ==============================================================================
# InferenceClient
# ==============================================================================

@pytest.mark.asyncio
async def test_unknown_provider_is_unsupported(generous_limits):
    client = InferenceClient(providers=[], rate_limits=generous_limits)

    with pytest.raises(ProviderError) as exc_info:
        await client.generate("nope", "model", [InferenceMessage("user", "hi")])

    assert exc_info.value.kind is ProviderErrorKind.UNSUPPORTED


@pytest.mark.asyncio
async def test_generate_records_provider_metrics(metrics, generous_limits):
    provider = ScriptedProvider(reply("hello", tokens=40))
    client = InferenceClient(
        providers=[provider], metrics=metrics, rate_limits=generous_limits, cost_per_1k_tokens=0.5
    )

    response = await client.generate("scripted", "m", [InferenceMessage("user", "hi")], credential="k")

    assert response.content == "hello"
    assert provider.requests[0].api_key == "k"
    recorded = metrics.get_provider_metrics("scripted")
    assert recorded.successful_calls == 1
    assert recorded.total_tokens == 40
    assert recorded.total_cost_usd == pytest.approx(0.02)


@pytest.mark.asyncio
async def test_provider_failure_is_recorded(metrics, generous_limits):
    provider = ScriptedProvider(ProviderError(ProviderErrorKind.HTTP, "down"))
    client = InferenceClient(providers=[provider], metrics=metrics, rate_limits=generous_limits)

    with pytest.raises(ProviderError):
        await client.generate("scripted", "m", [InferenceMessage("user", "hi")])

    assert metrics.get_provider_metrics("scripted").failed_calls == 1


@pytest.mark.asyncio
async def test_rate_limited_call_never_reaches_provider(generous_limits):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    provider = ScriptedProvider(reply("unused"))
    client = InferenceClient(providers=[], rate_limits=generous_limits)
    limiter = RateLimiter(1, 1, 60.0, provider="scripted", sleep=fake_sleep)
    client.register_provider(provider, limiter)
    limiter.try_acquire()

    with pytest.raises(RateLimitExceeded):
        await client.generate("scripted", "m", [InferenceMessage("user", "hi")])

    assert provider.requests == []


@pytest.mark.asyncio
async def test_bundled_provider_catalog(generous_limits):
    client = InferenceClient(
        providers=[GoogleProvider(), GroqProvider(), OpenAIProvider()], rate_limits=generous_limits
    )

    assert set(client.providers()) == {"google", "groq", "openai"}
    assert client.supports_feature("openai", ProviderFeature.VISION)
    assert not client.supports_feature("google", "json_mode")
    models = await client.list_models("groq")
    assert "llama-3.3-70b-versatile" in [m.id for m in models]
