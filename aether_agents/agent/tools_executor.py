"""
Tool Executor
=============

Runs tools on behalf of the agent loop.

Every execution goes through the same shared resources:

1. RESULT CACHE: a fresh cached result is returned without running anything
2. CONCURRENCY GATE: a semaphore shared by *all* tool calls in the process
3. TIMEOUT: each call races the tool against its timeout
4. METRICS: the registry and the MetricsCollector record every outcome

Execution flow:
    execute(name, params, cache_key)
         │
         ├── cache hit (not expired)? ──► return cached ToolResult
         │
         ▼
    acquire gate permit (waits while the gate is full)
         │
         ▼
    resolve tool ─► validate arguments ─► run under timeout
         │
         ▼
    wrap as ToolResult ─► cache if cacheable ─► record metrics
         │
         ▼
    release permit, return (or raise ToolError)

Failures raise ToolError subclasses. execute_parallel() captures them per
call instead, so one failing tool never takes the others down with it.
"""

import asyncio
import hashlib
import json
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from aether_agents.errors import (
    InvalidArguments,
    ToolError,
    ToolExecutionFailed,
    ToolNotFound,
    ToolTimeout,
    TooManyConcurrentTools,
)
from aether_agents.metrics import MetricsCollector
from aether_agents.tools import Tool, ToolCall, ToolDefinition, ToolRegistry, ToolResult
from aether_agents.utils.config import get_config
from aether_agents.utils.logger import Logger

logger = Logger("ToolExecutor")


def make_cache_key(tool_name: str, arguments: dict) -> str:
    """Stable cache key for a tool name plus its arguments."""
    canonical = json.dumps(arguments, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(f"{tool_name}:{canonical}".encode()).hexdigest()


@dataclass
class CachedToolResult:
    """A cached result that expires ``ttl`` seconds after ``created_at`` (wall clock)."""
    result: ToolResult
    ttl: float
    created_at: float = field(default_factory=time.time)

    def is_expired(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now - self.created_at > self.ttl


@dataclass
class ExecutorStats:
    available_permits: int
    max_concurrent: int
    cached_results: int
    registered_tools: int

    def to_dict(self) -> dict:
        return {
            "available_permits": self.available_permits,
            "max_concurrent": self.max_concurrent,
            "cached_results": self.cached_results,
            "registered_tools": self.registered_tools,
        }


class ToolExecutor:
    """
    Executes tools with caching, bounded concurrency and timeouts.

    Example:
        executor = ToolExecutor(ToolRegistry(), max_concurrent=10, default_timeout=30)
        executor.registry.register(ReadFileTool())

        result = await executor.execute(
            "read_file",
            {"path": "README.md"},
            cache_key=make_cache_key("read_file", {"path": "README.md"}),
        )
        result.output["content"]
    """

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        max_concurrent: int | None = None,
        default_timeout: float | None = None,
        metrics: MetricsCollector | None = None,
        permit_timeout: float | None = None
    ):
        """
        Initialize the executor.

        Args:
            registry: Tool catalog (a new empty one if omitted)
            max_concurrent: Permits in the shared gate (config default 10)
            default_timeout: Seconds for tools that declare no timeout
            metrics: Collector that also receives tool outcomes
            permit_timeout: Seconds to wait for a free permit before failing
                with TooManyConcurrentTools; None waits indefinitely
        """
        config = get_config().executor

        self.registry = registry if registry is not None else ToolRegistry()
        self.max_concurrent = max_concurrent or config.max_concurrent_tools
        self.default_timeout = default_timeout or config.default_timeout
        self.metrics = metrics
        self.permit_timeout = permit_timeout

        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._in_flight = 0
        self._cache: dict[str, CachedToolResult] = {}
        self._cache_lock = threading.Lock()

    # ==========================================================================
    # Execution
    # ==========================================================================

    async def execute(
        self,
        tool_name: str,
        params: dict | None = None,
        cache_key: str | None = None,
        timeout: float | None = None
    ) -> ToolResult:
        """
        Execute a single tool.

        Args:
            tool_name: Registered tool name
            params: Arguments for the tool
            cache_key: Optional key for the result cache
            timeout: Seconds to use when the tool declares no timeout of its
                own (falls back to the executor default)

        Returns:
            The successful ToolResult (possibly from cache)

        Raises:
            ToolNotFound, InvalidArguments, ToolTimeout, ToolExecutionFailed,
            TooManyConcurrentTools
        """
        params = params if params is not None else {}

        if cache_key is not None:
            cached = self._cache_lookup(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for tool: {tool_name}")
                return cached

        await self._acquire_permit(tool_name)
        self._in_flight += 1
        try:
            return await self._run(tool_name, params, cache_key, timeout)
        finally:
            self._in_flight -= 1
            self._semaphore.release()

    async def _acquire_permit(self, tool_name: str) -> None:
        if self.permit_timeout is None:
            await self._semaphore.acquire()
            return
        try:
            await asyncio.wait_for(self._semaphore.acquire(), self.permit_timeout)
        except asyncio.TimeoutError:
            raise TooManyConcurrentTools(tool_name, self.permit_timeout) from None

    async def _run(
        self,
        tool_name: str,
        params: dict,
        cache_key: str | None,
        timeout: float | None
    ) -> ToolResult:
        tool = self.registry.get(tool_name)
        if tool is None:
            raise ToolNotFound(tool_name)

        limit = tool.timeout or timeout or self.default_timeout
        start = time.perf_counter()

        try:
            self._validate(tool, params)
            output = await asyncio.wait_for(tool.execute(params), limit)
        except asyncio.TimeoutError:
            self._record(tool_name, time.perf_counter() - start, False)
            logger.warning(f"Tool {tool_name} timed out after {limit:g}s")
            raise ToolTimeout(tool_name, limit) from None
        except ToolError:
            self._record(tool_name, time.perf_counter() - start, False)
            raise
        except Exception as e:
            self._record(tool_name, time.perf_counter() - start, False)
            logger.warning(f"Tool {tool_name} failed: {e}")
            raise ToolExecutionFailed(tool_name, str(e)) from e

        duration = time.perf_counter() - start
        result = ToolResult(
            output=output,
            success=True,
            duration_ms=int(duration * 1000),
        )

        if cache_key is not None and tool.cacheable:
            with self._cache_lock:
                self._cache[cache_key] = CachedToolResult(result, tool.cache_ttl)

        self._record(tool_name, duration, True)
        logger.debug(f"Tool {tool_name} completed in {result.duration_ms}ms")
        return result

    @staticmethod
    def _validate(tool: Tool, params: Any) -> None:
        if not isinstance(params, dict):
            raise InvalidArguments(tool.name, "arguments must be an object")

        missing = [
            name for name in tool.parameters.get("required", [])
            if name not in params
        ]
        if missing:
            raise InvalidArguments(tool.name, f"missing required argument(s): {', '.join(missing)}")

    def _record(self, tool_name: str, duration: float, success: bool) -> None:
        self.registry.record_execution(tool_name, duration, success)
        if self.metrics is not None:
            self.metrics.record_tool_execution(tool_name, duration, success)

    async def execute_call(self, call: ToolCall, timeout: float | None = None) -> ToolResult:
        """
        Execute a ToolCall and resolve it.

        Errors are not raised: they are returned as a failed ToolResult and
        stored on the call, which is what the agent loop feeds back to the
        model.
        """
        try:
            result = await self._execute_call(call, timeout)
        except ToolError as e:
            result = ToolResult(output=e.to_payload(), success=False, error=str(e))
        call.result = result
        return result

    async def _execute_call(self, call: ToolCall, timeout: float | None) -> ToolResult:
        if call.arguments_error is not None:
            logger.warning(f"Rejected call to {call.name}: {call.arguments_error}")
            raise InvalidArguments(call.name, call.arguments_error)
        return await self.execute(call.name, call.arguments, timeout=timeout)

    async def execute_parallel(
        self,
        tool_calls: list[ToolCall],
        timeout: float | None = None
    ) -> list[ToolResult | ToolError]:
        """
        Execute several tool calls concurrently.

        Each call is its own task, still subject to the shared gate. Results
        come back in input order; a failed call yields its ToolError in its
        slot while the other calls complete normally.
        """
        tasks = [self._execute_call(call, timeout) for call in tool_calls]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results: list[ToolResult | ToolError] = []
        for call, outcome in zip(tool_calls, outcomes):
            if isinstance(outcome, ToolError):
                results.append(outcome)
            elif isinstance(outcome, BaseException):
                # gather() hands back cancellations and other escapes as values
                results.append(ToolExecutionFailed(call.name, str(outcome) or type(outcome).__name__))
            else:
                results.append(outcome)
        return results

    # ==========================================================================
    # Cache & introspection
    # ==========================================================================

    def _cache_lookup(self, cache_key: str) -> ToolResult | None:
        with self._cache_lock:
            cached = self._cache.get(cache_key)
            if cached is None:
                return None
            if cached.is_expired():
                del self._cache[cache_key]
                return None
            return cached.result

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()
        logger.info("Tool cache cleared")

    def list_tools(self) -> list[ToolDefinition]:
        return self.registry.list_tools()

    def get_tool_definition(self, name: str) -> ToolDefinition | None:
        return self.registry.get_definition(name)

    def stats(self) -> ExecutorStats:
        with self._cache_lock:
            cached = len(self._cache)
        return ExecutorStats(
            available_permits=self.max_concurrent - self._in_flight,
            max_concurrent=self.max_concurrent,
            cached_results=cached,
            registered_tools=self.registry.count(),
        )
