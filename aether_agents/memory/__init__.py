"""
Memory System
=============

Bounded, per-session conversation storage.

Each session gets a ConversationMemory with two competing limits:

1. TOKEN BUDGET: the conversation must fit the model's context window
2. HISTORY SIZE: a hard cap on the number of retained messages

When either limit is exceeded the oldest messages are evicted, except for
the session's system message, which is pinned: budget pressure removes the
message right after it instead. Dropping the system prompt silently would
change how the agent behaves halfway through a conversation.

Usage:
    from aether_agents.memory import MemoryManager, Message

    memory = MemoryManager(max_history_size=200, default_max_tokens=8000)
    memory.add_message("session-1", Message.system("You are a coding assistant."))
    memory.add_message("session-1", Message.user("List the TypeScript files"))

    history = memory.get_history("session-1")          # oldest first
    memory.get_stats("session-1").utilization          # percent of budget used
"""

import threading
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime

from aether_agents.memory.short_term import (
    ConversationMemory,
    Message,
    MessageRole,
    estimate_tokens,
)
from aether_agents.utils.config import get_config
from aether_agents.utils.logger import Logger

logger = Logger("Memory")


@dataclass
class MemoryStats:
    """Point-in-time view of one session's memory."""
    message_count: int
    total_tokens: int
    max_tokens: int
    utilization: float          # Percent of max_tokens in use
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict:
        return {
            "message_count": self.message_count,
            "total_tokens": self.total_tokens,
            "max_tokens": self.max_tokens,
            "utilization": self.utilization,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class MemoryUsage:
    """Totals across every session."""
    total_sessions: int
    total_messages: int
    total_tokens: int


class MemoryManager:
    """
    Facade over all session conversations.

    All operations are safe to call from concurrent tasks and threads; a
    single lock guards the session table and every conversation in it.

    Example:
        memory = MemoryManager()
        memory.add_message("s1", Message.user("Hello!"))
        memory.add_message("s1", Message.assistant("Hi there!"))
        memory.get_history("s1", limit=1)   # [assistant message]
        memory.clear_session("s1")
    """

    def __init__(
        self,
        max_history_size: int | None = None,
        default_max_tokens: int | None = None
    ):
        """
        Initialize the memory manager.

        Args:
            max_history_size: Messages kept per session (config default 1000)
            default_max_tokens: Token budget for new sessions (config default 100k)
        """
        config = get_config().memory
        self.max_history_size = max_history_size or config.max_history_size
        self.default_max_tokens = default_max_tokens or config.default_max_tokens

        self._lock = threading.Lock()
        self._storage: dict[str, ConversationMemory] = {}

    def _entry(self, session_id: str) -> ConversationMemory:
        memory = self._storage.get(session_id)
        if memory is None:
            memory = ConversationMemory(session_id, self.default_max_tokens)
            self._storage[session_id] = memory
        return memory

    # ==========================================================================
    # Writing
    # ==========================================================================

    def get_or_create(self, session_id: str, max_tokens: int | None = None) -> ConversationMemory:
        """
        Make sure a session has memory and return a copy of it.

        Args:
            session_id: The session
            max_tokens: Token budget to use if the memory is created now

        Returns:
            A detached copy; mutating it does not affect stored state
        """
        with self._lock:
            if session_id not in self._storage and max_tokens is not None:
                self._storage[session_id] = ConversationMemory(session_id, max_tokens)
            memory = self._entry(session_id)
            return replace(memory, messages=deque(memory.messages))

    def add_message(self, session_id: str, message: Message) -> None:
        """
        Append a message, then enforce the token budget and history cap.

        A new system message replaces the previous one, so a conversation
        never carries two system prompts.
        """
        with self._lock:
            memory = self._entry(session_id)

            if message.is_system:
                for index, existing in enumerate(memory.messages):
                    if existing.is_system:
                        memory.remove_at(index)
                        break

            memory.append(message)

            if memory.total_tokens > memory.max_tokens:
                self._prune(memory)

            self._enforce_history_cap(memory)

    def prune_messages(self, session_id: str) -> None:
        """Apply token-budget pruning to a session without adding anything."""
        with self._lock:
            memory = self._storage.get(session_id)
            if memory is not None:
                self._prune(memory)

    def _prune(self, memory: ConversationMemory) -> None:
        """
        Evict oldest messages until the conversation fits its token budget.

        At least two messages are always kept. A system message at the front
        is skipped over: the message after it goes instead.
        """
        system_message = memory.system_message()
        evicted = 0

        while memory.total_tokens > memory.max_tokens and len(memory.messages) > 2:
            if not memory.messages[0].is_system:
                memory.pop_front()
            else:
                memory.remove_at(1)
            evicted += 1

        if system_message is not None and memory.system_message() is None:
            memory.push_front(system_message)

        if evicted:
            logger.debug(
                f"Pruned {evicted} message(s) from {memory.session_id}",
                {"total_tokens": memory.total_tokens, "max_tokens": memory.max_tokens}
            )

    def _enforce_history_cap(self, memory: ConversationMemory) -> None:
        while len(memory.messages) > self.max_history_size:
            if memory.messages[0].is_system and len(memory.messages) > 1:
                memory.remove_at(1)
            else:
                memory.pop_front()

    def clear_session(self, session_id: str) -> None:
        """Forget a session's conversation entirely."""
        with self._lock:
            if self._storage.pop(session_id, None) is not None:
                logger.debug(f"Cleared memory for {session_id}")

    # ==========================================================================
    # Reading
    # ==========================================================================

    def get_history(self, session_id: str, limit: int | None = None) -> list[Message]:
        """
        Most recent messages, oldest first.

        Args:
            session_id: The session
            limit: Maximum messages to return (defaults to the history cap)

        Returns:
            Up to ``limit`` messages in chronological order; empty for an
            unknown session
        """
        if limit is None:
            limit = self.max_history_size
        if limit <= 0:
            return []

        with self._lock:
            memory = self._storage.get(session_id)
            if memory is None:
                return []
            return list(memory.messages)[-limit:]

    def get_recent(self, session_id: str, count: int) -> list[Message]:
        """The last ``count`` messages, oldest first."""
        return self.get_history(session_id, count)

    def get_stats(self, session_id: str) -> MemoryStats | None:
        with self._lock:
            memory = self._storage.get(session_id)
            if memory is None:
                return None
            utilization = (memory.total_tokens / memory.max_tokens * 100.0) if memory.max_tokens else 0.0
            return MemoryStats(
                message_count=len(memory.messages),
                total_tokens=memory.total_tokens,
                max_tokens=memory.max_tokens,
                utilization=utilization,
                created_at=memory.created_at,
                updated_at=memory.updated_at,
            )

    def get_active_sessions(self) -> list[str]:
        with self._lock:
            return list(self._storage.keys())

    def total_memory_usage(self) -> MemoryUsage:
        with self._lock:
            return MemoryUsage(
                total_sessions=len(self._storage),
                total_messages=sum(len(m.messages) for m in self._storage.values()),
                total_tokens=sum(m.total_tokens for m in self._storage.values()),
            )


__all__ = [
    "MemoryManager",
    "MemoryStats",
    "MemoryUsage",
    "ConversationMemory",
    "Message",
    "MessageRole",
    "estimate_tokens",
]
