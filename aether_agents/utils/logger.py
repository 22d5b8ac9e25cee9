"""
Logger Utility
==============

Context-aware logging for the agent engine. Every component creates its own
``Logger("Component")`` so output can be traced back to the subsystem that
produced it:

    [2026-01-31T10:30:00] [INFO] [AgentManager] Created session 3f2a...
    [2026-01-31T10:30:01] [DEBUG] [ToolExecutor] Cache hit for list_directory

Levels are filtered by the LOG_LEVEL environment variable (DEBUG, INFO,
WARNING, ERROR). Structured data passed alongside a message is dumped as
indented JSON underneath it.

Usage:
    from aether_agents.utils.logger import Logger

    logger = Logger("RateLimiter")
    logger.debug("Bucket refilled", {"provider": "groq", "tokens": 30})

    # Nested context for a sub-operation
    stream_logger = logger.child("Stream")   # -> [RateLimiter:Stream]
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any, TextIO


class LogLevel(IntEnum):
    """Numeric log levels; higher is more severe."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class Colors:
    """ANSI escape codes for colored terminal output."""
    RESET = "\033[0m"
    DEBUG = "\033[36m"    # Cyan
    INFO = "\033[32m"     # Green
    WARNING = "\033[33m"  # Yellow
    ERROR = "\033[31m"    # Red
    DIM = "\033[2m"


_LEVEL_NAMES = {
    "DEBUG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "WARNING": LogLevel.WARNING,
    "WARN": LogLevel.WARNING,
    "ERROR": LogLevel.ERROR,
}

# Process-wide override set through set_level(); None means "read LOG_LEVEL"
_level_override: LogLevel | None = None


def parse_level(value: str | None, default: LogLevel = LogLevel.INFO) -> LogLevel:
    """Map a level name such as "debug" or "WARN" to a LogLevel."""
    if not value:
        return default
    return _LEVEL_NAMES.get(value.strip().upper(), default)


def set_level(level: LogLevel | str | None) -> None:
    """
    Override the minimum level for every logger in the process.

    Args:
        level: A LogLevel, a level name, or None to go back to LOG_LEVEL
    """
    global _level_override
    if level is None or isinstance(level, LogLevel):
        _level_override = level
    else:
        _level_override = parse_level(level)


def _current_level() -> LogLevel:
    if _level_override is not None:
        return _level_override
    return parse_level(os.getenv("LOG_LEVEL"))


class Logger:
    """
    A context-aware logger with colored output.

    The minimum level is resolved on every call, so changing LOG_LEVEL or
    calling set_level() takes effect for loggers that already exist.

    Example:
        logger = Logger("ToolExecutor")
        logger.info("Executing tool: read_file")
        logger.warning("Tool timed out", {"tool": "execute_command", "timeout_s": 30})
    """

    def __init__(self, context: str = "", stream: TextIO | None = None):
        """
        Initialize a logger.

        Args:
            context: Prefix shown on every line (e.g. "AgentManager")
            stream: Fixed output stream; by default INFO and below go to
                stdout and WARNING and above go to stderr
        """
        self.context = context
        self._stream = stream

    def child(self, child_context: str) -> "Logger":
        """Create a logger whose context is ``parent:child``."""
        new_context = f"{self.context}:{child_context}" if self.context else child_context
        return Logger(new_context, self._stream)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= _current_level()

    def _format_message(self, level: str, message: str, color: str) -> str:
        timestamp = datetime.now().isoformat(timespec="seconds")
        context_str = f"[{self.context}] " if self.context else ""

        return (
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} "
            f"{color}[{level}]{Colors.RESET} "
            f"{context_str}{message}"
        )

    def _log(
        self,
        level: LogLevel,
        level_name: str,
        color: str,
        message: str,
        data: dict[str, Any] | None = None
    ) -> None:
        if not self.is_enabled_for(level):
            return

        if self._stream is not None:
            stream = self._stream
        else:
            stream = sys.stderr if level >= LogLevel.WARNING else sys.stdout

        print(self._format_message(level_name, message, color), file=stream)

        if data:
            data_str = json.dumps(data, indent=2, default=str)
            print(f"{Colors.DIM}{data_str}{Colors.RESET}", file=stream)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log a debug message (shown only with LOG_LEVEL=DEBUG)."""
        self._log(LogLevel.DEBUG, "DEBUG", Colors.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log general operational information."""
        self._log(LogLevel.INFO, "INFO", Colors.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log a recoverable problem, such as a failed tool call."""
        self._log(LogLevel.WARNING, "WARN", Colors.WARNING, message, data)

    def error(
        self,
        message: str,
        error: BaseException | None = None,
        data: dict[str, Any] | None = None
    ) -> None:
        """
        Log an error.

        Args:
            message: The error message
            error: Optional exception whose type and text are included
            data: Optional extra structured data
        """
        payload = dict(data) if data else {}
        if error is not None:
            payload["error_type"] = type(error).__name__
            payload["error_message"] = str(error)
        self._log(LogLevel.ERROR, "ERROR", Colors.ERROR, message, payload or None)


# Default logger for code that has no natural component name
logger = Logger("Aether")
