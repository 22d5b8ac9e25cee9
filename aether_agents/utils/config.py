"""
Configuration Management
========================

Centralized configuration for the agent engine. Every tunable limit lives
here as a typed, frozen dataclass so that components never call os.getenv()
themselves:

- agent defaults (iteration ceiling, temperature, token budgets)
- tool executor limits (concurrency gate, default timeout)
- memory limits (history size, context-window budget)
- per-provider rate-limit buckets
- provider endpoints

Values are read from the environment after loading a .env file. Nothing is
required: API keys are looked up lazily by the credential source, so the
engine can be constructed (and tested) without any secrets.

Usage:
    from aether_agents.utils.config import get_config

    config = get_config()
    config.executor.max_concurrent_tools   # 10
    config.rate_limits.for_provider("groq")
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


def _optional(name: str, default: str) -> str:
    """Get an environment variable, falling back to a default."""
    return os.getenv(name, default)


def _optional_int(name: str, default: int) -> int:
    """
    Get an optional integer environment variable.

    Invalid values fall back to the default with a warning on stdout (the
    logger itself is configured from the environment, so it is not used here).
    """
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        print(f"Warning: {name} is not a valid integer, using default: {default}")
        return default


def _optional_float(name: str, default: float) -> float:
    """Get an optional float environment variable."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        print(f"Warning: {name} is not a valid number, using default: {default}")
        return default


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

@dataclass(frozen=True)
class AgentDefaults:
    """Defaults applied to sessions that don't override them."""
    provider: str            # Provider used by the REPL entry point
    model: str               # Model used by the REPL entry point
    max_iterations: int      # Inference calls allowed per turn
    tool_timeout: float      # Seconds before a tool call is abandoned
    temperature: float
    max_tokens: int          # Completion tokens requested per inference call


@dataclass(frozen=True)
class ExecutorConfig:
    """Tool executor limits."""
    max_concurrent_tools: int    # Permits in the shared concurrency gate
    default_timeout: float       # Seconds, used when a tool declares none


@dataclass(frozen=True)
class MemoryConfig:
    """Conversation memory limits."""
    max_history_size: int        # Messages kept per session
    default_max_tokens: int      # Token budget per session


@dataclass(frozen=True)
class BucketConfig:
    """One token bucket: max_tokens refilled by refill_rate every refill_interval seconds."""
    max_tokens: int
    refill_rate: int
    refill_interval: float


# Requests-per-minute published for the free tiers of each provider
DEFAULT_PROVIDER_RPM = {
    "google": 60,
    "groq": 30,
    "openai": 60,
}

# Conservative bucket for providers we know nothing about
UNKNOWN_PROVIDER_RPM = 20


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-provider token buckets."""
    buckets: dict[str, BucketConfig] = field(default_factory=dict)
    default: BucketConfig = field(
        default_factory=lambda: BucketConfig(UNKNOWN_PROVIDER_RPM, UNKNOWN_PROVIDER_RPM, 60.0)
    )

    def for_provider(self, provider: str) -> BucketConfig:
        """Bucket settings for a provider, or the conservative default."""
        return self.buckets.get(provider, self.default)


@dataclass(frozen=True)
class ProviderEndpoints:
    """Base URLs for the bundled provider adapters."""
    google: str
    groq: str
    openai: str | None      # None lets the OpenAI SDK use its own default
    request_timeout: float  # Seconds per HTTP request


@dataclass(frozen=True)
class Config:
    """
    Root configuration object.

    Access via:
        config = get_config()
        config.memory.default_max_tokens
        config.rate_limits.for_provider("google").max_tokens
    """
    agent: AgentDefaults
    executor: ExecutorConfig
    memory: MemoryConfig
    rate_limits: RateLimitConfig
    endpoints: ProviderEndpoints
    cost_per_1k_tokens: float   # Linear cost estimate, not a pricing table
    log_level: str


def _load_rate_limits() -> RateLimitConfig:
    buckets = {}
    for provider, rpm in DEFAULT_PROVIDER_RPM.items():
        rpm = _optional_int(f"{provider.upper()}_RPM", rpm)
        buckets[provider] = BucketConfig(rpm, rpm, 60.0)
    default_rpm = _optional_int("DEFAULT_RPM", UNKNOWN_PROVIDER_RPM)
    return RateLimitConfig(
        buckets=buckets,
        default=BucketConfig(default_rpm, default_rpm, 60.0),
    )


def load_config() -> Config:
    """
    Load configuration from the environment (and .env, if present).

    Returns:
        Config: The typed configuration
    """
    load_dotenv()

    return Config(
        agent=AgentDefaults(
            provider=_optional("AETHER_PROVIDER", "groq"),
            model=_optional("AETHER_MODEL", "llama-3.3-70b-versatile"),
            max_iterations=_optional_int("AETHER_MAX_ITERATIONS", 10),
            tool_timeout=_optional_float("AETHER_TOOL_TIMEOUT", 30.0),
            temperature=_optional_float("AETHER_TEMPERATURE", 0.7),
            max_tokens=_optional_int("AETHER_MAX_TOKENS", 4096),
        ),
        executor=ExecutorConfig(
            max_concurrent_tools=_optional_int("AETHER_MAX_CONCURRENT_TOOLS", 10),
            default_timeout=_optional_float("AETHER_TOOL_TIMEOUT", 30.0),
        ),
        memory=MemoryConfig(
            max_history_size=_optional_int("AETHER_MAX_HISTORY", 1000),
            default_max_tokens=_optional_int("AETHER_MAX_CONTEXT_TOKENS", 100_000),
        ),
        rate_limits=_load_rate_limits(),
        endpoints=ProviderEndpoints(
            google=_optional("GOOGLE_API_BASE", "https://generativelanguage.googleapis.com/v1beta"),
            groq=_optional("GROQ_API_BASE", "https://api.groq.com/openai/v1"),
            openai=os.getenv("OPENAI_API_BASE"),
            request_timeout=_optional_float("AETHER_REQUEST_TIMEOUT", 60.0),
        ),
        cost_per_1k_tokens=_optional_float("AETHER_COST_PER_1K_TOKENS", 0.002),
        log_level=_optional("LOG_LEVEL", "info"),
    )


# ==============================================================================
# Singleton
# ==============================================================================

_config_instance: Config | None = None


def get_config() -> Config:
    """Get the process-wide configuration, loading it on first access."""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config()
    return _config_instance


def reset_config() -> None:
    """Forget the cached configuration so the next get_config() re-reads the environment."""
    global _config_instance
    _config_instance = None
