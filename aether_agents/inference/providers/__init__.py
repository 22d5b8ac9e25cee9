"""
Model Providers
===============

Bundled adapters:
- google: Gemini over httpx (server-sent event streaming)
- groq: OpenAI-compatible chat completions over httpx (SSE streaming)
- openai: OpenAI via the official SDK
"""

from aether_agents.inference.providers.base import HttpProvider, ModelProvider
from aether_agents.inference.providers.google import GoogleProvider
from aether_agents.inference.providers.groq import GroqProvider
from aether_agents.inference.providers.openai_provider import OpenAIProvider
from aether_agents.utils.config import ProviderEndpoints


def default_providers(endpoints: ProviderEndpoints) -> list[ModelProvider]:
    """One instance of every bundled adapter, pointed at the configured endpoints."""
    return [
        GoogleProvider(endpoints.google, endpoints.request_timeout),
        GroqProvider(endpoints.groq, endpoints.request_timeout),
        OpenAIProvider(endpoints.openai, endpoints.request_timeout),
    ]


__all__ = [
    "ModelProvider",
    "HttpProvider",
    "GoogleProvider",
    "GroqProvider",
    "OpenAIProvider",
    "default_providers",
]
