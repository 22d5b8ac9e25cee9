"""
Inference Types
===============

The provider-neutral request/response contract. Adapters translate these to
and from their wire formats; nothing outside ``inference.providers`` ever
sees a provider payload.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from aether_agents.memory.short_term import Message
from aether_agents.tools import ToolCall, ToolDefinition


class FinishReason(str, Enum):
    STOP = "stop"
    MAX_TOKENS = "max_tokens"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    OTHER = "other"


class ProviderFeature(str, Enum):
    STREAMING = "streaming"
    TOOL_CALLING = "tool_calling"
    SYSTEM_MESSAGES = "system_messages"
    JSON_MODE = "json_mode"
    VISION = "vision"


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class GenerationParameters:
    """Sampling settings sent with every request."""
    temperature: float = 0.7
    max_tokens: int = 4096
    top_p: float = 1.0
    stop_sequences: list[str] = field(default_factory=list)


@dataclass
class InferenceMessage:
    """
    One entry of the prompt.

    Unlike a stored memory Message, an inference message can carry the tool
    calls an assistant requested, or the id of the call a tool message
    answers. These only live in a turn's working prompt.
    """
    role: str
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None

    @classmethod
    def from_memory(cls, message: Message) -> "InferenceMessage":
        metadata = message.metadata or {}
        return cls(
            role=message.role.value,
            content=message.content,
            tool_call_id=metadata.get("tool_call_id"),
            name=metadata.get("tool_name"),
        )


@dataclass
class GenerateRequest:
    model: str
    messages: list[InferenceMessage]
    tools: list[ToolDefinition] = field(default_factory=list)
    parameters: GenerationParameters = field(default_factory=GenerationParameters)
    api_key: str = ""


@dataclass
class InferenceResponse:
    """
    Attributes:
        content: Generated text (may be empty when only tools were requested)
        tool_calls: Tool invocations the model asked for
        finish_reason: Why generation stopped
        usage: Token counts reported by the provider
        metadata: Provider-specific extras (response id, model version, ...)
    """
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: FinishReason = FinishReason.STOP
    usage: TokenUsage = field(default_factory=TokenUsage)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass
class StreamChunk:
    """An incremental delta. A stream always ends with exactly one is_final chunk."""
    delta: str = ""
    tool_call: ToolCall | None = None
    is_final: bool = False
    finish_reason: FinishReason | None = None
    usage: TokenUsage | None = None


StreamSink = Callable[[StreamChunk], None]


@dataclass
class ModelInfo:
    id: str
    name: str
    description: str
    context_window: int
    max_output_tokens: int
    features: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "context_window": self.context_window,
            "max_output_tokens": self.max_output_tokens,
            "features": self.features,
        }
