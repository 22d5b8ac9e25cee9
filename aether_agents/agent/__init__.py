"""
Agent System
============

The orchestration layer. It:
1. Manages sessions and their configuration
2. Assembles prompts from memory and the tool catalog
3. Runs the inference/tool loop for each turn
4. Executes tools with caching, bounded concurrency and timeouts

This module provides:
- AgentManager: sessions and the per-turn loop
- ContextAssembler: builds each turn's prompt
- ToolExecutor: cached, gated, timed tool execution
"""

from aether_agents.agent.core import (
    AgentConfig,
    AgentManager,
    AgentMetadata,
    AgentResult,
    Session,
)
from aether_agents.agent.context import AssembledContext, ContextAssembler
from aether_agents.agent.tools_executor import (
    CachedToolResult,
    ExecutorStats,
    ToolExecutor,
    make_cache_key,
)

__all__ = [
    "AgentManager",
    "AgentConfig",
    "AgentMetadata",
    "AgentResult",
    "Session",
    "AssembledContext",
    "ContextAssembler",
    "ToolExecutor",
    "CachedToolResult",
    "ExecutorStats",
    "make_cache_key",
]
