"""
Tools System
============

Tools are the capabilities the agent can invoke: reading files, running
commands, inspecting git state, searching the workspace.

Every tool exposes:
- a unique name and a description (shown to the model)
- a JSON Schema for its parameters
- an async execute(params) returning a JSON-like value, or raising
- cache policy (cacheable + TTL) and an optional timeout

The registry is the catalog the executor resolves names against. It also
keeps its own per-tool execution counters, independent of the engine-wide
MetricsCollector.

This module provides:
- Tool: abstract base class for tools
- FunctionTool: wraps an async function as a tool
- ToolCall / ToolResult / ToolDefinition: data passed around the agent loop
- ToolRegistry: thread-safe name -> tool catalog
"""

import json
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from aether_agents.metrics.records import ToolMetrics
from aether_agents.utils.logger import Logger

logger = Logger("Tools")

DEFAULT_CACHE_TTL = 60.0


@dataclass
class ToolResult:
    """
    Outcome of a single tool execution.

    Attributes:
        output: The JSON-like value the tool returned
        success: Whether the tool executed successfully
        duration_ms: Wall-clock execution time
        error: Error message if success is False
    """
    output: Any = None
    success: bool = True
    duration_ms: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "output": self.output,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }

    def to_message(self) -> str:
        """Serialize for a tool-role message."""
        if self.success:
            return json.dumps(self.output, default=str)
        if isinstance(self.output, dict) and "error" in self.output:
            return json.dumps(self.output, default=str)
        return json.dumps({"error": self.error}, default=str)


@dataclass
class ToolCall:
    """
    A tool invocation requested by the model.

    A call is pending until ``result`` is set. When the model sent arguments
    that could not be decoded, ``arguments`` is empty and ``arguments_error``
    says why; the executor rejects such a call with InvalidArguments.
    """
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"call_{uuid.uuid4().hex[:24]}")
    result: ToolResult | None = None
    arguments_error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_resolved(self) -> bool:
        return self.result is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
            "result": self.result.to_dict() if self.result else None,
            "arguments_error": self.arguments_error,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ToolDefinition:
    """What the host and the model get to see about a tool."""
    name: str
    description: str
    parameters: dict
    is_cacheable: bool = False
    cache_ttl_secs: float = DEFAULT_CACHE_TTL

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
            "is_cacheable": self.is_cacheable,
            "cache_ttl_secs": self.cache_ttl_secs,
        }


class Tool(ABC):
    """
    Base class for tools.

    Subclasses set the class attributes and implement execute(). Raise any
    exception to signal failure; the executor converts it into a ToolError.

    Example:
        class EchoTool(Tool):
            name = "echo"
            description = "Return the given text"
            parameters = {
                "type": "object",
                "properties": {"text": {"type": "string"}},
                "required": ["text"],
            }
            cacheable = True

            async def execute(self, params: dict) -> Any:
                return {"text": params["text"]}
    """

    name: str = ""
    description: str = ""
    parameters: dict = {"type": "object", "properties": {}}
    cacheable: bool = False
    cache_ttl: float = DEFAULT_CACHE_TTL
    timeout: float | None = None

    @abstractmethod
    async def execute(self, params: dict) -> Any:
        """Run the tool and return a JSON-serializable value."""

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
            is_cacheable=self.cacheable,
            cache_ttl_secs=self.cache_ttl,
        )


class FunctionTool(Tool):
    """
    A tool backed by a plain async function.

    Example:
        async def word_count(params: dict) -> dict:
            return {"words": len(params["text"].split())}

        tool = FunctionTool(
            name="word_count",
            description="Count words in a text",
            parameters={
                "type": "object",
                "properties": {"text": {"type": "string"}},
                "required": ["text"]
            },
            func=word_count,
            cacheable=True,
        )
    """

    def __init__(
        self,
        name: str,
        description: str,
        parameters: dict,
        func: Callable[[dict], Awaitable[Any]],
        cacheable: bool = False,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        timeout: float | None = None
    ):
        self.name = name
        self.description = description
        self.parameters = parameters
        self.func = func
        self.cacheable = cacheable
        self.cache_ttl = cache_ttl
        self.timeout = timeout

    async def execute(self, params: dict) -> Any:
        return await self.func(params)


class ToolRegistry:
    """
    Central catalog of available tools.

    Example:
        registry = ToolRegistry()
        registry.register(EchoTool())

        registry.get("echo")          # the tool, or None
        registry.list_tools()         # [ToolDefinition(...)]
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tools: dict[str, Tool] = {}
        self._metrics: dict[str, ToolMetrics] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool, replacing any tool with the same name.

        Raises:
            ValueError: If the tool has no name
        """
        if not tool.name:
            raise ValueError(f"{type(tool).__name__} has no name")

        with self._lock:
            replaced = tool.name in self._tools
            self._tools[tool.name] = tool

        if replaced:
            logger.warning(f"Replaced tool: {tool.name}")
        else:
            logger.debug(f"Registered tool: {tool.name}")

    def unregister(self, name: str) -> bool:
        """Remove a tool. Returns False if it wasn't registered."""
        with self._lock:
            return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Tool | None:
        with self._lock:
            return self._tools.get(name)

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def list_names(self) -> list[str]:
        with self._lock:
            return list(self._tools.keys())

    def list_tools(self) -> list[ToolDefinition]:
        """Definitions of every registered tool, in registration order."""
        with self._lock:
            tools = list(self._tools.values())
        return [tool.definition() for tool in tools]

    def get_definition(self, name: str) -> ToolDefinition | None:
        tool = self.get(name)
        return tool.definition() if tool else None

    def count(self) -> int:
        with self._lock:
            return len(self._tools)

    def record_execution(self, tool_name: str, duration: float, success: bool) -> None:
        """Record one execution; ``duration`` is in seconds."""
        with self._lock:
            metrics = self._metrics.setdefault(tool_name, ToolMetrics())
            metrics.record(max(0, int(duration * 1000)), success)

    def get_metrics(self, tool_name: str) -> ToolMetrics | None:
        with self._lock:
            metrics = self._metrics.get(tool_name)
            if metrics is None:
                return None
            return ToolMetrics(**vars(metrics))


__all__ = [
    "Tool",
    "FunctionTool",
    "ToolCall",
    "ToolResult",
    "ToolDefinition",
    "ToolRegistry",
    "DEFAULT_CACHE_TTL",
]
