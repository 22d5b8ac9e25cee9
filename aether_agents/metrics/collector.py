"""
Metrics Collector
=================

Operational metrics for the engine, kept in three keyed tables plus one
system-wide record:

    agents     keyed by agent type   (one entry per send_message outcome)
    tools      keyed by tool name    (one entry per tool execution)
    providers  keyed by provider id  (one entry per inference call)

Recording only ever increments. Reads return copies, so callers can hold on
to a snapshot without it changing underneath them.

A single lock guards all tables. reset() swaps every table for a fresh one
while holding it, and get_all_metrics() copies every table while holding
it, so a reader never sees some tables reset and others not.
"""

import copy
import threading

from aether_agents.metrics.records import (
    AgentMetrics,
    AllMetrics,
    ProviderMetrics,
    SystemMetrics,
    ToolMetrics,
)
from aether_agents.utils.logger import Logger

logger = Logger("Metrics")


def _ms(seconds: float) -> int:
    return max(0, int(seconds * 1000))


class MetricsCollector:
    """
    Concurrent counters keyed by agent, tool and provider.

    Durations are passed in seconds (as measured with time.perf_counter())
    and stored as whole milliseconds.

    Example:
        metrics = MetricsCollector()
        metrics.record_agent_execution("coder", 1.25, tokens=812, cost=0.0016, success=True)
        metrics.get_agent_metrics("coder").success_rate   # 1.0
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._agents: dict[str, AgentMetrics] = {}
        self._tools: dict[str, ToolMetrics] = {}
        self._providers: dict[str, ProviderMetrics] = {}
        self._system = SystemMetrics()

    # ==========================================================================
    # Recording
    # ==========================================================================

    def record_agent_execution(
        self,
        agent_id: str,
        duration: float,
        tokens: int,
        cost: float,
        success: bool
    ) -> None:
        """Record one completed (or failed) turn and roll it into the system totals."""
        with self._lock:
            metrics = self._agents.setdefault(agent_id, AgentMetrics())
            metrics.record(_ms(duration), tokens, cost, success)

            self._system.total_requests += 1
            self._system.total_tokens += tokens
            self._system.total_cost_usd += cost

    def record_tool_execution(self, tool_name: str, duration: float, success: bool) -> None:
        with self._lock:
            metrics = self._tools.setdefault(tool_name, ToolMetrics())
            metrics.record(_ms(duration), success)

    def record_provider_call(
        self,
        provider: str,
        duration: float,
        tokens: int,
        cost: float,
        success: bool
    ) -> None:
        with self._lock:
            metrics = self._providers.setdefault(provider, ProviderMetrics())
            metrics.record(_ms(duration), tokens, cost, success)

    # ==========================================================================
    # Reading
    # ==========================================================================

    def get_agent_metrics(self, agent_id: str) -> AgentMetrics | None:
        with self._lock:
            metrics = self._agents.get(agent_id)
            return copy.copy(metrics) if metrics else None

    def get_tool_metrics(self, tool_name: str) -> ToolMetrics | None:
        with self._lock:
            metrics = self._tools.get(tool_name)
            return copy.copy(metrics) if metrics else None

    def get_provider_metrics(self, provider: str) -> ProviderMetrics | None:
        with self._lock:
            metrics = self._providers.get(provider)
            return copy.copy(metrics) if metrics else None

    def get_system_metrics(self) -> SystemMetrics:
        with self._lock:
            return copy.copy(self._system)

    def get_all_metrics(self) -> AllMetrics:
        """Snapshot every table at a single point in time."""
        with self._lock:
            return AllMetrics(
                agents={k: copy.copy(v) for k, v in self._agents.items()},
                tools={k: copy.copy(v) for k, v in self._tools.items()},
                providers={k: copy.copy(v) for k, v in self._providers.items()},
                system=copy.copy(self._system),
            )

    def reset(self) -> None:
        """Clear all tables and restart the uptime clock."""
        with self._lock:
            self._agents = {}
            self._tools = {}
            self._providers = {}
            self._system = SystemMetrics()
        logger.info("Metrics reset")
