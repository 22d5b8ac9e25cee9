"""
Inference
=========

Provider-agnostic model access.

The InferenceClient holds one adapter and one rate limiter per provider id.
Every call goes through the same three steps:

1. Resolve the adapter (unknown id -> ProviderError(UNSUPPORTED))
2. Wait for a request token from that provider's RateLimiter
   (exhausted -> RateLimitExceeded, nothing is sent)
3. Call the adapter and record latency, tokens, cost and outcome

Usage:
    from aether_agents.inference import InferenceClient, InferenceMessage

    client = InferenceClient()
    response = await client.generate(
        "groq",
        "llama-3.3-70b-versatile",
        [InferenceMessage("user", "Hello!")],
        credential=api_key,
    )
    response.content
"""

import threading
import time
from typing import Sequence

from aether_agents.errors import ProviderError, ProviderErrorKind
from aether_agents.inference.providers import ModelProvider, default_providers
from aether_agents.inference.rate_limiter import RateLimiter, RateLimiterStats
from aether_agents.inference.types import (
    FinishReason,
    GenerateRequest,
    GenerationParameters,
    InferenceMessage,
    InferenceResponse,
    ModelInfo,
    ProviderFeature,
    StreamChunk,
    StreamSink,
    TokenUsage,
)
from aether_agents.memory.short_term import Message
from aether_agents.metrics import MetricsCollector
from aether_agents.tools import ToolDefinition
from aether_agents.utils.config import RateLimitConfig, get_config
from aether_agents.utils.logger import Logger

logger = Logger("Inference")


def _prompt(messages: Sequence[InferenceMessage | Message]) -> list[InferenceMessage]:
    return [
        m if isinstance(m, InferenceMessage) else InferenceMessage.from_memory(m)
        for m in messages
    ]


class InferenceClient:
    """
    Rate-limited, metered front door to every model provider.

    Args:
        providers: Adapters to register (defaults to the bundled ones)
        metrics: Collector receiving per-provider call records
        rate_limits: Bucket settings (defaults to configuration)
        cost_per_1k_tokens: Linear cost estimate used for provider metrics
    """

    def __init__(
        self,
        providers: Sequence[ModelProvider] | None = None,
        metrics: MetricsCollector | None = None,
        rate_limits: RateLimitConfig | None = None,
        cost_per_1k_tokens: float | None = None
    ):
        config = get_config()

        self.metrics = metrics
        self._rate_limits = rate_limits or config.rate_limits
        self.cost_per_1k_tokens = (
            cost_per_1k_tokens if cost_per_1k_tokens is not None else config.cost_per_1k_tokens
        )

        self._lock = threading.Lock()
        self._providers: dict[str, ModelProvider] = {}
        self._limiters: dict[str, RateLimiter] = {}

        if providers is None:
            providers = default_providers(config.endpoints)
        for provider in providers:
            self.register_provider(provider)

    # ==========================================================================
    # Registry
    # ==========================================================================

    def register_provider(self, provider: ModelProvider, limiter: RateLimiter | None = None) -> None:
        """Add (or replace) an adapter together with its rate limiter."""
        with self._lock:
            self._providers[provider.id] = provider
            self._limiters[provider.id] = limiter or RateLimiter.for_provider(provider.id, self._rate_limits)
        logger.debug(f"Registered provider: {provider.id}")

    def has_provider(self, provider_id: str) -> bool:
        with self._lock:
            return provider_id in self._providers

    def providers(self) -> list[str]:
        with self._lock:
            return list(self._providers.keys())

    def get_provider(self, provider_id: str) -> ModelProvider:
        with self._lock:
            provider = self._providers.get(provider_id)
        if provider is None:
            raise ProviderError(ProviderErrorKind.UNSUPPORTED, f"Unknown provider: {provider_id}")
        return provider

    def rate_limiter(self, provider_id: str) -> RateLimiter:
        self.get_provider(provider_id)
        with self._lock:
            return self._limiters[provider_id]

    def rate_limit_stats(self) -> dict[str, RateLimiterStats]:
        with self._lock:
            limiters = dict(self._limiters)
        return {pid: limiter.stats() for pid, limiter in limiters.items()}

    async def list_models(self, provider_id: str) -> list[ModelInfo]:
        return await self.get_provider(provider_id).list_models()

    def supports_feature(self, provider_id: str, feature: ProviderFeature | str) -> bool:
        return self.get_provider(provider_id).supports_feature(ProviderFeature(feature))

    # ==========================================================================
    # Calls
    # ==========================================================================

    def estimate_cost(self, tokens: int) -> float:
        return tokens / 1000 * self.cost_per_1k_tokens

    def _record(self, provider_id: str, duration: float, tokens: int, success: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_provider_call(
                provider_id, duration, tokens, self.estimate_cost(tokens), success
            )

    async def _prepare(
        self,
        provider_id: str,
        model: str,
        messages: Sequence[InferenceMessage | Message],
        tools: Sequence[ToolDefinition] | None,
        params: GenerationParameters | None,
        credential: str
    ) -> tuple[ModelProvider, GenerateRequest]:
        provider = self.get_provider(provider_id)
        await self.rate_limiter(provider_id).acquire()

        request = GenerateRequest(
            model=model,
            messages=_prompt(messages),
            tools=list(tools or []),
            parameters=params or GenerationParameters(),
            api_key=credential,
        )
        return provider, request

    async def generate(
        self,
        provider_id: str,
        model: str,
        messages: Sequence[InferenceMessage | Message],
        tools: Sequence[ToolDefinition] | None = None,
        params: GenerationParameters | None = None,
        credential: str = ""
    ) -> InferenceResponse:
        """
        Run one completion.

        Raises:
            RateLimitExceeded: No request token became available
            ProviderError: The provider is unknown or the call failed
        """
        provider, request = await self._prepare(provider_id, model, messages, tools, params, credential)

        start = time.perf_counter()
        try:
            response = await provider.generate(request)
        except ProviderError:
            self._record(provider_id, time.perf_counter() - start, 0, False)
            raise

        self._record(provider_id, time.perf_counter() - start, response.usage.total_tokens, True)
        logger.debug(
            f"{provider_id}/{model} responded",
            {
                "finish_reason": response.finish_reason.value,
                "tool_calls": len(response.tool_calls),
                "tokens": response.usage.total_tokens,
            }
        )
        return response

    async def stream(
        self,
        provider_id: str,
        model: str,
        messages: Sequence[InferenceMessage | Message],
        sink: StreamSink,
        tools: Sequence[ToolDefinition] | None = None,
        params: GenerationParameters | None = None,
        credential: str = ""
    ) -> InferenceResponse:
        """
        Run one completion, pushing deltas into ``sink``.

        The sink receives exactly one chunk with is_final=True, as the last
        chunk. The accumulated response is also returned.
        """
        provider, request = await self._prepare(provider_id, model, messages, tools, params, credential)

        start = time.perf_counter()
        try:
            response = await provider.stream(request, sink)
        except ProviderError:
            self._record(provider_id, time.perf_counter() - start, 0, False)
            raise

        self._record(provider_id, time.perf_counter() - start, response.usage.total_tokens, True)
        return response


__all__ = [
    "InferenceClient",
    "InferenceMessage",
    "InferenceResponse",
    "GenerateRequest",
    "GenerationParameters",
    "FinishReason",
    "ModelInfo",
    "ProviderFeature",
    "StreamChunk",
    "StreamSink",
    "TokenUsage",
    "RateLimiter",
]
