"""
Agent Core
==========

The AgentManager owns session lifecycle and the per-turn orchestration loop.

A turn (one send_message call):
    User Message
         │
         ▼
    Append to memory ─► Assemble prompt (history + tool schemas)
         │
         ▼
    Resolve provider credential
         │
         ▼
    ┌──► Inference (rate limited)
    │        │
    │        ▼
    │   ┌─── Tool calls requested? ───┐
    │   │                             │
    │   Yes                           No
    │   │                             │
    │   ▼                             ▼
    │   Execute tools            Persist reply,
    │   (errors become           update session
    │    tool messages)          and metrics
    │   │
    └───┘  (at most max_iterations inference calls)

Failure policy:
- a failing tool never aborts the turn; the model sees the error payload
- a failing inference call (provider error, rate limit, missing credential)
  ends the turn with a failed AgentResult; the user message stays in memory
  and no assistant message is stored
- hitting the iteration ceiling is a soft stop: the last reply is returned
"""

import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from aether_agents.agent.context import AssembledContext, ContextAssembler
from aether_agents.agent.tools_executor import ToolExecutor
from aether_agents.errors import (
    AgentError,
    InferenceFailed,
    InvalidConfiguration,
    ProviderError,
    RateLimitExceeded,
    SessionNotFound,
    ToolError,
)
from aether_agents.inference import InferenceClient
from aether_agents.inference.types import GenerationParameters, StreamSink
from aether_agents.memory import MemoryManager, MemoryStats, Message
from aether_agents.metrics import AgentMetrics, AllMetrics, MetricsCollector
from aether_agents.tools import Tool, ToolCall, ToolDefinition, ToolResult
from aether_agents.tools.builtin import register_builtin_tools
from aether_agents.utils.config import get_config
from aether_agents.utils.credentials import CredentialSource, EnvCredentialSource
from aether_agents.utils.logger import Logger

logger = Logger("Agent")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ==============================================================================
# Data Model
# ==============================================================================

@dataclass
class AgentConfig:
    """
    Per-session agent settings.

    Attributes:
        provider: Provider id ("google", "groq", "openai", ...)
        model: Model id understood by that provider
        system_prompt: Seeded into memory as the pinned system message
        max_iterations: Inference calls allowed per turn
        tool_timeout: Seconds a tool may run when it declares no timeout
        parallel_tools: Run the tool calls of one reply concurrently
        extra: Provider-specific settings; ``api_key`` overrides the
            credential source
    """
    provider: str
    model: str
    system_prompt: str | None = None
    max_iterations: int = 10
    tool_timeout: float = 30.0
    temperature: float = 0.7
    max_tokens: int = 4096
    parallel_tools: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_defaults(cls, **overrides) -> "AgentConfig":
        """Config built from the environment defaults, with overrides applied."""
        defaults = get_config().agent
        values = {
            "provider": defaults.provider,
            "model": defaults.model,
            "max_iterations": defaults.max_iterations,
            "tool_timeout": defaults.tool_timeout,
            "temperature": defaults.temperature,
            "max_tokens": defaults.max_tokens,
        }
        values.update(overrides)
        return cls(**values)

    def generation_parameters(self) -> GenerationParameters:
        return GenerationParameters(temperature=self.temperature, max_tokens=self.max_tokens)

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "model": self.model,
            "system_prompt": self.system_prompt,
            "max_iterations": self.max_iterations,
            "tool_timeout": self.tool_timeout,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "parallel_tools": self.parallel_tools,
            # Never echo credentials back to the host
            "extra": {k: v for k, v in self.extra.items() if k != "api_key"},
        }


@dataclass
class Session:
    id: str
    agent_type: str
    config: AgentConfig
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    message_count: int = 0      # Completed turns
    total_tokens: int = 0
    total_cost_usd: float = 0.0

    def update_from_metadata(self, metadata: "AgentMetadata") -> None:
        self.updated_at = _now()
        self.message_count += 1
        self.total_tokens += metadata.tokens_used
        self.total_cost_usd += metadata.cost_usd

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agent_type": self.agent_type,
            "config": self.config.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "message_count": self.message_count,
            "total_tokens": self.total_tokens,
            "total_cost_usd": self.total_cost_usd,
        }


@dataclass
class AgentMetadata:
    tokens_used: int = 0
    execution_time_ms: int = 0
    tools_executed: list[str] = field(default_factory=list)
    cost_usd: float = 0.0
    iterations: int = 0
    model: str | None = None
    provider: str | None = None

    def to_dict(self) -> dict:
        return {
            "tokens_used": self.tokens_used,
            "execution_time_ms": self.execution_time_ms,
            "tools_executed": self.tools_executed,
            "cost_usd": self.cost_usd,
            "iterations": self.iterations,
            "model": self.model,
            "provider": self.provider,
        }


@dataclass
class AgentResult:
    """Outcome of one turn."""
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    metadata: AgentMetadata = field(default_factory=AgentMetadata)
    success: bool = True
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "tool_calls": [call.to_dict() for call in self.tool_calls],
            "metadata": self.metadata.to_dict(),
            "success": self.success,
            "error": self.error,
        }


# Failures that end a turn instead of being fed back to the model
_INFERENCE_ERRORS = (ProviderError, RateLimitExceeded)


# ==============================================================================
# Agent Manager
# ==============================================================================

class AgentManager:
    """
    Top-level orchestrator: sessions plus the tool-calling loop.

    Example:
        manager = AgentManager()
        session_id = manager.create_session(
            "coder",
            AgentConfig(provider="groq", model="llama-3.3-70b-versatile",
                        system_prompt="You are a coding assistant."),
        )

        result = await manager.send_message(session_id, "What's in README.md?")
        result.content                    # final assistant text
        result.metadata.tools_executed    # ["read_file"]
    """

    def __init__(
        self,
        inference: InferenceClient | None = None,
        executor: ToolExecutor | None = None,
        memory: MemoryManager | None = None,
        metrics: MetricsCollector | None = None,
        credentials: CredentialSource | None = None,
        register_builtins: bool = True
    ):
        """
        Initialize the manager. Every collaborator can be injected; missing
        ones are built from configuration and share one MetricsCollector.

        Args:
            inference: Model access (default: all bundled providers)
            executor: Tool executor (default: new registry and gate)
            memory: Conversation store
            metrics: Metrics collector
            credentials: API-key lookup (default: environment variables)
            register_builtins: Register the built-in filesystem, terminal,
                git and workspace tools
        """
        self.metrics = metrics or MetricsCollector()
        self.inference = inference or InferenceClient(metrics=self.metrics)
        self.executor = executor or ToolExecutor(metrics=self.metrics)
        self.memory = memory or MemoryManager()
        self.credentials = credentials or EnvCredentialSource()
        self.cost_per_1k_tokens = get_config().cost_per_1k_tokens

        self.context = ContextAssembler(self.memory, self.executor)

        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

        if register_builtins:
            register_builtin_tools(self.executor.registry)

        logger.info(
            "Agent manager initialized",
            {"providers": self.inference.providers(), "tools": self.executor.registry.count()}
        )

    # ==========================================================================
    # Sessions
    # ==========================================================================

    def _validate(self, config: AgentConfig) -> None:
        if not self.inference.has_provider(config.provider):
            raise InvalidConfiguration(f"unknown provider '{config.provider}'")
        if not config.model:
            raise InvalidConfiguration("model is required")
        if config.max_iterations < 1:
            raise InvalidConfiguration("max_iterations must be at least 1")
        if not 0.0 <= config.temperature <= 2.0:
            raise InvalidConfiguration("temperature must be between 0 and 2")
        if config.max_tokens < 1:
            raise InvalidConfiguration("max_tokens must be at least 1")
        if config.tool_timeout <= 0:
            raise InvalidConfiguration("tool_timeout must be positive")

    def create_session(self, agent_type: str, config: AgentConfig | None = None) -> str:
        """
        Create a session and return its id.

        Raises:
            InvalidConfiguration: The config is unusable
        """
        config = config or AgentConfig.from_defaults()
        self._validate(config)

        session = Session(id=str(uuid.uuid4()), agent_type=agent_type, config=config)
        with self._lock:
            self._sessions[session.id] = session

        if config.system_prompt:
            self.memory.add_message(session.id, Message.system(config.system_prompt))

        logger.info(f"Created session {session.id}", {"agent_type": agent_type, "provider": config.provider})
        return session.id

    def destroy_session(self, session_id: str) -> None:
        """
        Remove a session and its memory.

        Raises:
            SessionNotFound: No such session
        """
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFound(session_id)

        self.memory.clear_session(session_id)
        logger.info(f"Destroyed session {session_id}")

    def _session(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            return replace(session)

    def get_session(self, session_id: str) -> Session | None:
        """A copy of the session, or None."""
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session else None

    def list_sessions(self) -> list[str]:
        with self._lock:
            return list(self._sessions.keys())

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _commit(self, session_id: str, metadata: AgentMetadata) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            # Destroyed while the turn was running
            if session is not None:
                session.update_from_metadata(metadata)

    # ==========================================================================
    # Turns
    # ==========================================================================

    def _resolve_credential(self, config: AgentConfig) -> str:
        override = config.extra.get("api_key")
        if override:
            return str(override)
        return self.credentials.get(config.provider)

    def estimate_cost(self, tokens: int) -> float:
        """Linear placeholder, not a pricing table."""
        return tokens / 1000 * self.cost_per_1k_tokens

    async def send_message(
        self,
        session_id: str,
        text: str,
        tools_enabled: bool = True
    ) -> AgentResult:
        """
        Run one turn.

        Returns:
            AgentResult; success=False when inference failed

        Raises:
            SessionNotFound: No such session
        """
        session = self._session(session_id)
        config = session.config
        start = time.perf_counter()

        logger.info(f"Processing message for {session_id}: {text[:50]}")

        # 1. Record the user message
        self.memory.add_message(session_id, Message.user(text))

        # 2-3. Prompt and tool catalog
        context = self.context.assemble(session_id, tools_enabled)
        metadata = AgentMetadata(model=config.model, provider=config.provider)
        executed: list[ToolCall] = []

        try:
            credential = self._resolve_credential(config)

            # 4. The loop
            content = await self._run_loop(config, context, credential, metadata, executed)

        except _INFERENCE_ERRORS as e:
            failure = InferenceFailed(e)
            logger.error(f"Turn failed for {session_id}", e)

            metadata.execution_time_ms = int((time.perf_counter() - start) * 1000)
            metadata.cost_usd = self.estimate_cost(metadata.tokens_used)
            self.metrics.record_agent_execution(
                session.agent_type,
                time.perf_counter() - start,
                metadata.tokens_used,
                metadata.cost_usd,
                False,
            )
            return AgentResult(
                content="",
                tool_calls=executed,
                metadata=metadata,
                success=False,
                error=str(failure),
            )

        # 5. Totals
        elapsed = time.perf_counter() - start
        metadata.execution_time_ms = int(elapsed * 1000)
        metadata.cost_usd = self.estimate_cost(metadata.tokens_used)

        # 6. Persist and account
        self.memory.add_message(
            session_id,
            Message.assistant(content, metadata={"model": config.model, "provider": config.provider}),
        )
        self._commit(session_id, metadata)
        self.metrics.record_agent_execution(
            session.agent_type,
            elapsed,
            metadata.tokens_used,
            metadata.cost_usd,
            True,
        )

        logger.info(
            f"Turn complete for {session_id}",
            {
                "iterations": metadata.iterations,
                "tokens": metadata.tokens_used,
                "tools": metadata.tools_executed,
            }
        )
        return AgentResult(content=content, tool_calls=executed, metadata=metadata)

    async def _run_loop(
        self,
        config: AgentConfig,
        context: AssembledContext,
        credential: str,
        metadata: AgentMetadata,
        executed: list[ToolCall]
    ) -> str:
        """Inference/tool iterations; returns the last assistant text."""
        params = config.generation_parameters()
        content = ""

        for iteration in range(1, config.max_iterations + 1):
            metadata.iterations = iteration

            response = await self.inference.generate(
                config.provider,
                config.model,
                context.messages,
                tools=context.tools,
                params=params,
                credential=credential,
            )
            metadata.tokens_used += response.usage.total_tokens
            content = response.content
            context.append_assistant(response.content, response.tool_calls)

            if not response.has_tool_calls:
                return content

            logger.debug(f"Tool iteration {iteration}: {[c.name for c in response.tool_calls]}")
            results = await self._execute_tools(config, response.tool_calls)

            for call, result in zip(response.tool_calls, results):
                call.result = result
                executed.append(call)
                metadata.tools_executed.append(call.name)
                context.append_tool_result(call.id, call.name, result.to_message())

        logger.warning(f"Reached max iterations ({config.max_iterations})")
        return content

    async def _execute_tools(self, config: AgentConfig, calls: list[ToolCall]) -> list[ToolResult]:
        if config.parallel_tools and len(calls) > 1:
            outcomes = await self.executor.execute_parallel(calls, timeout=config.tool_timeout)
            return [
                ToolResult(output=o.to_payload(), success=False, error=str(o))
                if isinstance(o, ToolError) else o
                for o in outcomes
            ]

        results = []
        for call in calls:
            results.append(await self.executor.execute_call(call, timeout=config.tool_timeout))
        return results

    async def stream_message(self, session_id: str, text: str, sink: StreamSink) -> AgentResult:
        """
        Stream a reply without tools.

        Deltas go to ``sink`` as they arrive; the complete reply is persisted
        like a normal turn.

        Raises:
            SessionNotFound: No such session
        """
        session = self._session(session_id)
        config = session.config
        start = time.perf_counter()

        self.memory.add_message(session_id, Message.user(text))
        context = self.context.assemble(session_id, tools_enabled=False)
        metadata = AgentMetadata(model=config.model, provider=config.provider, iterations=1)

        try:
            response = await self.inference.stream(
                config.provider,
                config.model,
                context.messages,
                sink,
                params=config.generation_parameters(),
                credential=self._resolve_credential(config),
            )
        except _INFERENCE_ERRORS as e:
            logger.error(f"Stream failed for {session_id}", e)
            self.metrics.record_agent_execution(session.agent_type, time.perf_counter() - start, 0, 0.0, False)
            return AgentResult(content="", metadata=metadata, success=False, error=str(InferenceFailed(e)))

        elapsed = time.perf_counter() - start
        metadata.tokens_used = response.usage.total_tokens
        metadata.execution_time_ms = int(elapsed * 1000)
        metadata.cost_usd = self.estimate_cost(metadata.tokens_used)

        self.memory.add_message(session_id, Message.assistant(response.content))
        self._commit(session_id, metadata)
        self.metrics.record_agent_execution(
            session.agent_type, elapsed, metadata.tokens_used, metadata.cost_usd, True
        )
        return AgentResult(content=response.content, metadata=metadata)

    # ==========================================================================
    # Host operations
    # ==========================================================================

    def get_history(self, session_id: str, limit: int | None = None) -> list[Message]:
        return self.memory.get_history(session_id, limit)

    def get_memory_stats(self, session_id: str) -> MemoryStats | None:
        return self.memory.get_stats(session_id)

    def get_metrics(self, agent_id: str) -> AgentMetrics | None:
        return self.metrics.get_agent_metrics(agent_id)

    def get_all_metrics(self) -> AllMetrics:
        return self.metrics.get_all_metrics()

    def reset_metrics(self) -> None:
        self.metrics.reset()

    def list_tools(self) -> list[ToolDefinition]:
        return self.executor.list_tools()

    def register_tool(self, tool: Tool) -> None:
        self.executor.registry.register(tool)

    async def execute_tool(
        self,
        name: str,
        params: dict,
        cache_key: str | None = None
    ) -> ToolResult:
        """
        Run a tool directly, outside any turn.

        Raises:
            ToolError: The tool failed
        """
        return await self.executor.execute(name, params, cache_key=cache_key)

    def clear_tool_cache(self) -> None:
        self.executor.clear_cache()


__all__ = [
    "AgentManager",
    "AgentConfig",
    "AgentMetadata",
    "AgentResult",
    "Session",
    "AgentError",
]
