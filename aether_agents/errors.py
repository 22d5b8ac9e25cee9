"""
Error Taxonomy
==============

Every failure the engine can report is an AgentError subclass:

    AgentError
    ├── SessionNotFound
    ├── InvalidConfiguration
    ├── MemoryLimitExceeded      (reserved)
    ├── RateLimitExceeded        carries retry_after (seconds)
    ├── ProviderError            carries kind + raw body
    ├── InferenceFailed          wraps a ProviderError / RateLimitExceeded
    └── ToolError
        ├── ToolNotFound
        ├── InvalidArguments
        ├── ToolExecutionFailed
        ├── ToolTimeout
        └── TooManyConcurrentTools

Tool errors never escape a turn: the agent loop turns them into tool
messages for the model. Inference errors end the turn as a failed
AgentResult. Only session-management errors reach the caller as exceptions.
"""

from enum import Enum


class AgentError(Exception):
    """Base class for all engine errors."""


class SessionNotFound(AgentError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class InvalidConfiguration(AgentError):
    def __init__(self, message: str):
        super().__init__(f"Invalid configuration: {message}")


class MemoryLimitExceeded(AgentError):
    def __init__(self, message: str = "Memory limit exceeded"):
        super().__init__(message)


class RateLimitExceeded(AgentError):
    """No request token was available; retry_after is the wait until the next refill."""

    def __init__(self, retry_after: float, provider: str | None = None):
        self.retry_after = retry_after
        self.provider = provider
        where = f" for {provider}" if provider else ""
        super().__init__(f"Rate limit exceeded{where}, retry after {retry_after:.2f}s")


class ProviderErrorKind(str, Enum):
    HTTP = "http"
    INVALID_RESPONSE = "invalid_response"
    AUTH = "auth"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


class ProviderError(AgentError):
    """
    A model provider call failed.

    Attributes:
        kind: What went wrong (see ProviderErrorKind)
        body: Raw error body returned by the provider, when there was one
        status_code: HTTP status, when the failure was an HTTP response
    """

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        body: str | None = None,
        status_code: int | None = None
    ):
        self.kind = kind
        self.body = body
        self.status_code = status_code
        super().__init__(f"Provider error ({kind.value}): {message}")


class InferenceFailed(AgentError):
    """Caller-facing wrapper around the provider-level cause."""

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Inference failed: {cause}")


class ToolError(AgentError):
    """Base class for failures of a single tool call."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(message)

    def to_payload(self) -> dict:
        """Structured form fed back to the model as a tool message."""
        return {
            "error": str(self),
            "error_type": type(self).__name__,
            "tool": self.tool_name,
        }


class ToolNotFound(ToolError):
    def __init__(self, tool_name: str):
        super().__init__(tool_name, f"Tool not found: {tool_name}")


class InvalidArguments(ToolError):
    def __init__(self, tool_name: str, message: str):
        super().__init__(tool_name, f"Invalid arguments for {tool_name}: {message}")


class ToolExecutionFailed(ToolError):
    def __init__(self, tool_name: str, message: str):
        super().__init__(tool_name, f"Execution of {tool_name} failed: {message}")


class ToolTimeout(ToolError):
    def __init__(self, tool_name: str, timeout: float):
        self.timeout = timeout
        super().__init__(tool_name, f"Tool {tool_name} timed out after {timeout:g}s")


class TooManyConcurrentTools(ToolError):
    def __init__(self, tool_name: str, waited: float):
        self.waited = waited
        super().__init__(
            tool_name,
            f"No execution slot for {tool_name} after waiting {waited:g}s"
        )


__all__ = [
    "AgentError",
    "SessionNotFound",
    "InvalidConfiguration",
    "MemoryLimitExceeded",
    "RateLimitExceeded",
    "ProviderErrorKind",
    "ProviderError",
    "InferenceFailed",
    "ToolError",
    "ToolNotFound",
    "InvalidArguments",
    "ToolExecutionFailed",
    "ToolTimeout",
    "TooManyConcurrentTools",
]
