"""
Aether Agents - Agent Orchestration Engine
==========================================

Turns a user message into a multi-turn, tool-augmented conversation with a
language model, while enforcing provider rate limits, bounding conversation
memory, caching and gating tool execution, and collecting metrics.

This package provides:
- AgentManager: sessions and the inference/tool loop
- InferenceClient: rate-limited access to Google, Groq and OpenAI models
- ToolRegistry / ToolExecutor: cached, concurrency-gated tool execution
- MemoryManager: bounded per-session conversations with a pinned system prompt
- MetricsCollector: per-agent, per-tool and per-provider counters
"""

from aether_agents.agent import AgentConfig, AgentManager, AgentResult, ToolExecutor
from aether_agents.inference import InferenceClient
from aether_agents.memory import MemoryManager, Message
from aether_agents.metrics import MetricsCollector
from aether_agents.tools import FunctionTool, Tool, ToolRegistry

__version__ = "1.0.0"

__all__ = [
    "AgentManager",
    "AgentConfig",
    "AgentResult",
    "InferenceClient",
    "ToolExecutor",
    "ToolRegistry",
    "Tool",
    "FunctionTool",
    "MemoryManager",
    "Message",
    "MetricsCollector",
]
