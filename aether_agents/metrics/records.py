"""
Metrics Records
===============

Plain counter records kept by the MetricsCollector. Counters only ever grow;
everything that is a ratio or an average is a property computed on read.
"""

import time
from dataclasses import asdict, dataclass, field


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


@dataclass
class AgentMetrics:
    """Aggregate outcome of every turn run by one agent type."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    total_latency_ms: int = 0
    min_latency_ms: int = 0
    max_latency_ms: int = 0

    def record(self, duration_ms: int, tokens: int, cost: float, success: bool) -> None:
        self.total_requests += 1
        self.total_tokens += tokens
        self.total_cost_usd += cost
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1

        self.total_latency_ms += duration_ms
        if self.total_requests == 1:
            self.min_latency_ms = duration_ms
        else:
            self.min_latency_ms = min(self.min_latency_ms, duration_ms)
        self.max_latency_ms = max(self.max_latency_ms, duration_ms)

    @property
    def avg_latency_ms(self) -> float:
        return _ratio(self.total_latency_ms, self.total_requests)

    @property
    def success_rate(self) -> float:
        return _ratio(self.successful_requests, self.total_requests)

    @property
    def avg_tokens_per_request(self) -> float:
        return _ratio(self.total_tokens, self.total_requests)

    @property
    def avg_cost_per_request(self) -> float:
        return _ratio(self.total_cost_usd, self.total_requests)

    def to_dict(self) -> dict:
        data = asdict(self)
        data.update(
            avg_latency_ms=self.avg_latency_ms,
            success_rate=self.success_rate,
            avg_tokens_per_request=self.avg_tokens_per_request,
            avg_cost_per_request=self.avg_cost_per_request,
        )
        return data


@dataclass
class ToolMetrics:
    """Execution counters for one tool."""
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    total_duration_ms: int = 0
    min_duration_ms: int = 0
    max_duration_ms: int = 0

    def record(self, duration_ms: int, success: bool) -> None:
        self.total_executions += 1
        if success:
            self.successful_executions += 1
        else:
            self.failed_executions += 1

        self.total_duration_ms += duration_ms
        if self.total_executions == 1:
            self.min_duration_ms = duration_ms
        else:
            self.min_duration_ms = min(self.min_duration_ms, duration_ms)
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)

    @property
    def avg_duration_ms(self) -> float:
        return _ratio(self.total_duration_ms, self.total_executions)

    @property
    def success_rate(self) -> float:
        return _ratio(self.successful_executions, self.total_executions)

    def to_dict(self) -> dict:
        data = asdict(self)
        data.update(avg_duration_ms=self.avg_duration_ms, success_rate=self.success_rate)
        return data


@dataclass
class ProviderMetrics:
    """Counters for calls made to one model provider."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    total_latency_ms: int = 0
    min_latency_ms: int = 0
    max_latency_ms: int = 0

    def record(self, duration_ms: int, tokens: int, cost: float, success: bool) -> None:
        self.total_calls += 1
        self.total_tokens += tokens
        self.total_cost_usd += cost
        if success:
            self.successful_calls += 1
        else:
            self.failed_calls += 1

        self.total_latency_ms += duration_ms
        if self.total_calls == 1:
            self.min_latency_ms = duration_ms
        else:
            self.min_latency_ms = min(self.min_latency_ms, duration_ms)
        self.max_latency_ms = max(self.max_latency_ms, duration_ms)

    @property
    def avg_latency_ms(self) -> float:
        return _ratio(self.total_latency_ms, self.total_calls)

    @property
    def success_rate(self) -> float:
        return _ratio(self.successful_calls, self.total_calls)

    def to_dict(self) -> dict:
        data = asdict(self)
        data.update(avg_latency_ms=self.avg_latency_ms, success_rate=self.success_rate)
        return data


@dataclass
class SystemMetrics:
    """Process-wide totals across all agents."""
    total_requests: int = 0
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    start_time: float = field(default_factory=time.monotonic)

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.start_time

    def to_dict(self) -> dict:
        return {
            "total_requests": self.total_requests,
            "total_tokens": self.total_tokens,
            "total_cost_usd": self.total_cost_usd,
            "uptime_seconds": self.uptime_seconds,
        }


@dataclass
class AllMetrics:
    """A consistent snapshot of every metrics table."""
    agents: dict[str, AgentMetrics]
    tools: dict[str, ToolMetrics]
    providers: dict[str, ProviderMetrics]
    system: SystemMetrics

    def to_dict(self) -> dict:
        return {
            "agents": {k: v.to_dict() for k, v in self.agents.items()},
            "tools": {k: v.to_dict() for k, v in self.tools.items()},
            "providers": {k: v.to_dict() for k, v in self.providers.items()},
            "system": self.system.to_dict(),
        }
