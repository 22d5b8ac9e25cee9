import asyncio

import pytest

from aether_agents.agent.tools_executor import CachedToolResult, ToolExecutor, make_cache_key
from aether_agents.errors import (
    InvalidArguments,
    ToolExecutionFailed,
    ToolNotFound,
    ToolTimeout,
    TooManyConcurrentTools,
)
from aether_agents.tools import FunctionTool, ToolCall, ToolRegistry, ToolResult

from conftest import echo_tool, failing_tool


class CountingTool(FunctionTool):
    """Echo tool that counts how often it actually ran."""

    def __init__(self, **kwargs):
        self.calls = 0

        async def run(params: dict) -> dict:
            self.calls += 1
            return {"n": self.calls}

        super().__init__(
            name="counter",
            description="Count invocations",
            parameters={"type": "object", "properties": {}},
            func=run,
            **kwargs,
        )


def sleeping_tool(seconds: float, timeout: float | None = None) -> FunctionTool:
    async def run(params: dict) -> dict:
        await asyncio.sleep(seconds)
        return {"slept": seconds}

    return FunctionTool(
        name="sleepy",
        description="Sleep for a while",
        parameters={"type": "object", "properties": {}},
        func=run,
        timeout=timeout,
    )


@pytest.fixture
def executor(metrics):
    return ToolExecutor(ToolRegistry(), max_concurrent=4, default_timeout=5.0, metrics=metrics)


def test_cache_key_ignores_argument_order():
    assert make_cache_key("read_file", {"a": 1, "b": 2}) == make_cache_key("read_file", {"b": 2, "a": 1})
    assert make_cache_key("read_file", {"a": 1}) != make_cache_key("list_directory", {"a": 1})


def test_cached_result_expiry():
    cached = CachedToolResult(ToolResult(output=1), ttl=10.0, created_at=100.0)

    assert not cached.is_expired(now=110.0)
    assert cached.is_expired(now=110.5)


@pytest.mark.asyncio
async def test_execute_returns_tool_output(executor):
    executor.registry.register(echo_tool())

    result = await executor.execute("echo", {"text": "hi"})

    assert result.success
    assert result.output == {"text": "hi"}


@pytest.mark.asyncio
async def test_cache_hit_skips_execution(executor):
    tool = CountingTool(cacheable=True, cache_ttl=60.0)
    executor.registry.register(tool)
    key = make_cache_key("counter", {})

    first = await executor.execute("counter", {}, cache_key=key)
    second = await executor.execute("counter", {}, cache_key=key)

    assert tool.calls == 1
    assert second.output == first.output


@pytest.mark.asyncio
async def test_expired_cache_entry_runs_again(executor):
    tool = CountingTool(cacheable=True, cache_ttl=60.0)
    executor.registry.register(tool)
    key = make_cache_key("counter", {})

    await executor.execute("counter", {}, cache_key=key)
    executor._cache[key].created_at -= 120.0
    result = await executor.execute("counter", {}, cache_key=key)

    assert tool.calls == 2
    assert result.output == {"n": 2}


@pytest.mark.asyncio
async def test_non_cacheable_tool_is_never_cached(executor):
    tool = CountingTool(cacheable=False)
    executor.registry.register(tool)
    key = make_cache_key("counter", {})

    await executor.execute("counter", {}, cache_key=key)
    await executor.execute("counter", {}, cache_key=key)

    assert tool.calls == 2
    assert executor.stats().cached_results == 0


@pytest.mark.asyncio
async def test_clear_cache(executor):
    tool = CountingTool(cacheable=True)
    executor.registry.register(tool)
    key = make_cache_key("counter", {})

    await executor.execute("counter", {}, cache_key=key)
    executor.clear_cache()
    await executor.execute("counter", {}, cache_key=key)

    assert tool.calls == 2


@pytest.mark.asyncio
async def test_unknown_tool(executor):
    with pytest.raises(ToolNotFound):
        await executor.execute("nope", {})


@pytest.mark.asyncio
async def test_missing_required_argument(executor):
    executor.registry.register(echo_tool())

    with pytest.raises(InvalidArguments) as exc_info:
        await executor.execute("echo", {})

    assert "text" in str(exc_info.value)


@pytest.mark.asyncio
async def test_tool_exception_becomes_execution_failed(executor, metrics):
    executor.registry.register(failing_tool())

    with pytest.raises(ToolExecutionFailed) as exc_info:
        await executor.execute("boom", {})

    assert "disk on fire" in str(exc_info.value)
    assert metrics.get_tool_metrics("boom").failed_executions == 1
    assert executor.registry.get_metrics("boom").failed_executions == 1


@pytest.mark.asyncio
async def test_tool_timeout(executor):
    executor.registry.register(sleeping_tool(1.0, timeout=0.05))

    with pytest.raises(ToolTimeout):
        await executor.execute("sleepy", {})


@pytest.mark.asyncio
async def test_call_timeout_applies_when_tool_declares_none(executor):
    executor.registry.register(sleeping_tool(1.0))

    with pytest.raises(ToolTimeout):
        await executor.execute("sleepy", {}, timeout=0.05)


@pytest.mark.asyncio
async def test_successful_execution_is_recorded(executor, metrics):
    executor.registry.register(echo_tool())

    await executor.execute("echo", {"text": "a"})
    await executor.execute("echo", {"text": "b"})

    recorded = metrics.get_tool_metrics("echo")
    assert recorded.total_executions == 2
    assert recorded.success_rate == 1.0


@pytest.mark.asyncio
async def test_execute_call_resolves_failures_into_results(executor):
    call = ToolCall(name="missing", arguments={})

    result = await executor.execute_call(call)

    assert not result.success
    assert result.output["error_type"] == "ToolNotFound"
    assert call.is_resolved


@pytest.mark.asyncio
async def test_execute_call_rejects_undecodable_arguments(executor):
    tool = CountingTool()
    executor.registry.register(tool)
    call = ToolCall(name="counter", arguments_error="tool arguments are not valid JSON: '{n: 1'")

    result = await executor.execute_call(call)

    assert not result.success
    assert result.output["error_type"] == "InvalidArguments"
    assert "not valid JSON" in result.error
    assert tool.calls == 0
    assert call.is_resolved


@pytest.mark.asyncio
async def test_parallel_undecodable_arguments_fail_only_their_slot(executor):
    executor.registry.register(echo_tool())

    results = await executor.execute_parallel([
        ToolCall(name="echo", arguments={"text": "one"}),
        ToolCall(name="echo", arguments_error="tool arguments must be an object: '[1]'"),
    ])

    assert results[0].output == {"text": "one"}
    assert isinstance(results[1], InvalidArguments)


@pytest.mark.asyncio
async def test_parallel_failures_are_isolated(executor):
    executor.registry.register(echo_tool())
    executor.registry.register(failing_tool())

    results = await executor.execute_parallel([
        ToolCall(name="echo", arguments={"text": "one"}),
        ToolCall(name="boom", arguments={}),
        ToolCall(name="echo", arguments={"text": "three"}),
    ])

    assert results[0].output == {"text": "one"}
    assert isinstance(results[1], ToolExecutionFailed)
    assert results[2].output == {"text": "three"}


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_gate(metrics):
    executor = ToolExecutor(ToolRegistry(), max_concurrent=2, metrics=metrics)
    running = 0
    peak = 0

    async def track(params: dict) -> dict:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.02)
        running -= 1
        return {}

    executor.registry.register(FunctionTool("track", "", {"type": "object"}, track))

    await executor.execute_parallel([ToolCall(name="track") for _ in range(6)])

    assert peak == 2
    assert executor.stats().available_permits == 2


@pytest.mark.asyncio
async def test_permit_timeout(metrics):
    executor = ToolExecutor(ToolRegistry(), max_concurrent=1, metrics=metrics, permit_timeout=0.05)
    executor.registry.register(sleeping_tool(0.5))

    slow = asyncio.create_task(executor.execute("sleepy", {}))
    await asyncio.sleep(0.01)

    with pytest.raises(TooManyConcurrentTools):
        await executor.execute("sleepy", {})

    await slow


@pytest.mark.asyncio
async def test_stats_reports_permits_in_use(metrics):
    executor = ToolExecutor(ToolRegistry(), max_concurrent=2, metrics=metrics)
    executor.registry.register(sleeping_tool(0.1))

    slow = asyncio.create_task(executor.execute("sleepy", {}))
    await asyncio.sleep(0.02)

    assert executor.stats().available_permits == 1

    await slow
    assert executor.stats().available_permits == 2


def test_stats(executor):
    executor.registry.register(echo_tool())

    stats = executor.stats()

    assert stats.max_concurrent == 4
    assert stats.available_permits == 4
    assert stats.registered_tools == 1
    assert executor.get_tool_definition("echo").name == "echo"
