"""
Metrics
=======

Counters and latency aggregates for agents, tools and providers.

Usage:
    from aether_agents.metrics import MetricsCollector

    metrics = MetricsCollector()
    metrics.record_tool_execution("read_file", 0.05, success=True)
    metrics.get_all_metrics().to_dict()
"""

from aether_agents.metrics.collector import MetricsCollector
from aether_agents.metrics.records import (
    AgentMetrics,
    AllMetrics,
    ProviderMetrics,
    SystemMetrics,
    ToolMetrics,
)

__all__ = [
    "MetricsCollector",
    "AgentMetrics",
    "AllMetrics",
    "ProviderMetrics",
    "SystemMetrics",
    "ToolMetrics",
]
