import pytest

from aether_agents.agent import AgentManager, ToolExecutor
from aether_agents.inference import InferenceClient
from aether_agents.inference.providers.base import ModelProvider
from aether_agents.inference.types import (
    FinishReason,
    GenerateRequest,
    InferenceResponse,
    ProviderFeature,
    StreamChunk,
    TokenUsage,
)
from aether_agents.memory import MemoryManager
from aether_agents.metrics import MetricsCollector
from aether_agents.tools import FunctionTool, ToolCall
from aether_agents.utils.config import BucketConfig, RateLimitConfig, reset_config
from aether_agents.utils.credentials import StaticCredentialSource


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    """Every test reads configuration from a clean environment."""
    for name in (
        "AETHER_MAX_ITERATIONS",
        "AETHER_TOOL_TIMEOUT",
        "AETHER_MAX_CONCURRENT_TOOLS",
        "AETHER_MAX_HISTORY",
        "AETHER_MAX_CONTEXT_TOKENS",
        "AETHER_COST_PER_1K_TOKENS",
        "GROQ_RPM",
        "GOOGLE_RPM",
        "OPENAI_RPM",
        "DEFAULT_RPM",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


# ---------------------------------------------------------------------------
# Fake provider
# ---------------------------------------------------------------------------

def reply(content: str = "", *calls: ToolCall, tokens: int = 10) -> InferenceResponse:
    return InferenceResponse(
        content=content,
        tool_calls=list(calls),
        finish_reason=FinishReason.TOOL_CALLS if calls else FinishReason.STOP,
        usage=TokenUsage(tokens // 2, tokens - tokens // 2, tokens),
    )


class ScriptedProvider(ModelProvider):
    """Returns queued responses (or raises queued exceptions) in order."""

    id = "scripted"
    name = "Scripted"
    features = frozenset({ProviderFeature.STREAMING, ProviderFeature.TOOL_CALLING})

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[GenerateRequest] = []
        self.repeat_last = False

    def _next(self):
        if not self.responses:
            raise AssertionError("ScriptedProvider ran out of responses")
        item = self.responses[0] if self.repeat_last and len(self.responses) == 1 else self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def generate(self, request: GenerateRequest) -> InferenceResponse:
        self.requests.append(request)
        return self._next()

    async def stream(self, request, sink):
        self.requests.append(request)
        response = self._next()
        for word in response.content.split(" "):
            sink(StreamChunk(delta=word))
        sink(StreamChunk(is_final=True, finish_reason=response.finish_reason, usage=response.usage))
        return response


@pytest.fixture
def generous_limits():
    bucket = BucketConfig(1000, 1000, 60.0)
    return RateLimitConfig(buckets={}, default=bucket)


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def manager(provider, metrics, generous_limits):
    inference = InferenceClient(providers=[provider], metrics=metrics, rate_limits=generous_limits)
    return AgentManager(
        inference=inference,
        executor=ToolExecutor(metrics=metrics),
        memory=MemoryManager(),
        metrics=metrics,
        credentials=StaticCredentialSource({"scripted": "test-key"}),
        register_builtins=False,
    )


# ---------------------------------------------------------------------------
# Fake tools
# ---------------------------------------------------------------------------

async def _echo(params: dict) -> dict:
    return {"text": params["text"]}


async def _boom(params: dict) -> dict:
    raise RuntimeError("disk on fire")


def echo_tool(**kwargs) -> FunctionTool:
    return FunctionTool(
        name="echo",
        description="Return the given text",
        parameters={
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
        func=_echo,
        **kwargs,
    )


def failing_tool() -> FunctionTool:
    return FunctionTool(
        name="boom",
        description="Always fails",
        parameters={"type": "object", "properties": {}},
        func=_boom,
    )
