"""
Short-Term Memory
=================

In-process storage for a session's conversation. Short-term memory:

- holds the ordered messages that make up the prompt
- lives only in RAM (gone on restart)
- keeps a running token total so pruning never has to re-count

Messages are immutable once created. Order is insertion order and is
meaningful: it is the order the model sees.
"""

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class MessageRole(str, Enum):
    """Who authored a message."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def estimate_tokens(text: str) -> int:
    """
    Rough token estimate for text.

    Averages two heuristics: one token per four bytes of UTF-8, and one token
    per whitespace-separated word. Provider tokenizers differ, so this is
    only used for budgeting, never for billing.
    """
    byte_estimate = len(text.encode("utf-8")) // 4
    word_estimate = len(text.split())
    return (byte_estimate + word_estimate) // 2


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    """
    A single message in a conversation.

    Attributes:
        role: Who sent the message
        content: The message text
        token_count: Estimated tokens (filled from content when omitted)
        id: Unique message id
        timestamp: When the message was created
        metadata: Optional extra data (tool call ids, model, ...)
    """
    role: MessageRole
    content: str
    token_count: int = -1
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=_now)
    metadata: dict[str, Any] | None = None

    def __post_init__(self):
        # Accept plain strings ("user") as well as MessageRole members
        object.__setattr__(self, "role", MessageRole(self.role))
        if self.token_count < 0:
            object.__setattr__(self, "token_count", estimate_tokens(self.content))

    @classmethod
    def system(cls, content: str, **kwargs) -> "Message":
        return cls(MessageRole.SYSTEM, content, **kwargs)

    @classmethod
    def user(cls, content: str, **kwargs) -> "Message":
        return cls(MessageRole.USER, content, **kwargs)

    @classmethod
    def assistant(cls, content: str, **kwargs) -> "Message":
        return cls(MessageRole.ASSISTANT, content, **kwargs)

    @classmethod
    def tool(cls, content: str, **kwargs) -> "Message":
        return cls(MessageRole.TOOL, content, **kwargs)

    @property
    def is_system(self) -> bool:
        return self.role is MessageRole.SYSTEM

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "token_count": self.token_count,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass
class ConversationMemory:
    """
    Conversation state for one session.

    Invariants maintained by the MemoryManager:
    - total_tokens == sum of the token counts of ``messages``
    - at most one system message is present
    - messages are only ever removed, never reordered

    Attributes:
        session_id: Owning session
        max_tokens: Token budget for the whole conversation
        messages: Ordered message history
        total_tokens: Running token total
    """
    session_id: str
    max_tokens: int
    messages: deque[Message] = field(default_factory=deque)
    total_tokens: int = 0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def append(self, message: Message) -> None:
        self.messages.append(message)
        self.total_tokens += message.token_count
        self.updated_at = _now()

    def pop_front(self) -> Message:
        removed = self.messages.popleft()
        self.total_tokens = max(0, self.total_tokens - removed.token_count)
        return removed

    def remove_at(self, index: int) -> Message:
        removed = self.messages[index]
        del self.messages[index]
        self.total_tokens = max(0, self.total_tokens - removed.token_count)
        return removed

    def push_front(self, message: Message) -> None:
        self.messages.appendleft(message)
        self.total_tokens += message.token_count

    def system_message(self) -> Message | None:
        for message in self.messages:
            if message.is_system:
                return message
        return None

    def snapshot(self) -> list[Message]:
        """Copy of the messages in chronological order."""
        return list(self.messages)
