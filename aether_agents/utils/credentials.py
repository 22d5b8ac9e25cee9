"""
Provider Credentials
====================

The engine never talks to a keychain itself. It asks a CredentialSource for
a provider's API key and treats the answer as opaque.

Some backing stores are slow to show a value right after it was written, so
sources share an explicit CredentialCache:

- populated when a key is stored
- consulted before the backing store on read
- invalidated when a key is deleted

The cache is an ordinary object handed to the source, not a hidden global;
pass the same instance to every source that should share it.
"""

import os
import threading
from abc import ABC, abstractmethod

from aether_agents.errors import ProviderError, ProviderErrorKind
from aether_agents.utils.logger import Logger

logger = Logger("Credentials")


class CredentialCache:
    """Thread-safe provider_id -> api_key map."""

    def __init__(self):
        self._lock = threading.Lock()
        self._keys: dict[str, str] = {}

    def get(self, provider_id: str) -> str | None:
        with self._lock:
            return self._keys.get(provider_id)

    def put(self, provider_id: str, api_key: str) -> None:
        with self._lock:
            self._keys[provider_id] = api_key

    def invalidate(self, provider_id: str) -> None:
        with self._lock:
            self._keys.pop(provider_id, None)

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()

    def __contains__(self, provider_id: str) -> bool:
        with self._lock:
            return provider_id in self._keys


class CredentialSource(ABC):
    """Looks up API keys by provider id."""

    @abstractmethod
    def get(self, provider_id: str) -> str:
        """
        Return the API key for a provider.

        Raises:
            ProviderError: kind AUTH when no key is available
        """

    def store(self, provider_id: str, api_key: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} is read-only")

    def delete(self, provider_id: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} is read-only")


def _missing(provider_id: str) -> ProviderError:
    return ProviderError(
        ProviderErrorKind.AUTH,
        f"No API key configured for provider '{provider_id}'"
    )


class EnvCredentialSource(CredentialSource):
    """
    Reads ``<PROVIDER>_API_KEY`` from the environment, through a cache.

    Keys stored at runtime live only in the cache (and therefore take
    precedence over the environment until deleted).

    Example:
        source = EnvCredentialSource()
        source.get("groq")            # value of GROQ_API_KEY
        source.store("groq", "gsk-")  # visible immediately to get()
    """

    def __init__(self, cache: CredentialCache | None = None):
        self.cache = cache if cache is not None else CredentialCache()

    @staticmethod
    def env_var(provider_id: str) -> str:
        return f"{provider_id.upper().replace('-', '_')}_API_KEY"

    def get(self, provider_id: str) -> str:
        cached = self.cache.get(provider_id)
        if cached:
            return cached

        value = os.getenv(self.env_var(provider_id))
        if not value:
            raise _missing(provider_id)

        self.cache.put(provider_id, value)
        return value

    def store(self, provider_id: str, api_key: str) -> None:
        self.cache.put(provider_id, api_key)
        logger.info(f"Stored credential for {provider_id}")

    def delete(self, provider_id: str) -> None:
        self.cache.invalidate(provider_id)
        logger.info(f"Deleted credential for {provider_id}")


class StaticCredentialSource(CredentialSource):
    """Serves keys from a fixed mapping; handy for embedding and tests."""

    def __init__(self, keys: dict[str, str] | None = None):
        self._keys = dict(keys or {})

    def get(self, provider_id: str) -> str:
        value = self._keys.get(provider_id)
        if not value:
            raise _missing(provider_id)
        return value

    def store(self, provider_id: str, api_key: str) -> None:
        self._keys[provider_id] = api_key

    def delete(self, provider_id: str) -> None:
        self._keys.pop(provider_id, None)
