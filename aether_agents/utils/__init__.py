"""
Utilities Module
================

Common utilities shared across the engine:
- logger: context-aware logging with levels
- config: centralized, typed configuration
- credentials: provider API-key lookup with an explicit cache
"""

from aether_agents.utils.logger import Logger, logger
from aether_agents.utils.config import get_config, reset_config, Config
from aether_agents.utils.credentials import (
    CredentialCache,
    CredentialSource,
    EnvCredentialSource,
    StaticCredentialSource,
)

__all__ = [
    "Logger",
    "logger",
    "get_config",
    "reset_config",
    "Config",
    "CredentialCache",
    "CredentialSource",
    "EnvCredentialSource",
    "StaticCredentialSource",
]
