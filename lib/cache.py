"""
In-process TTL cache with stale-on-error fetch.

One instance lives for the whole process and is shared by the CRM client and
the dashboard builders. Expired entries are never swept; they are ignored by
get() but still served by cache_or_fetch() when a refresh fails, so a
transient HubSpot outage does not blank a dashboard that was working.

Usage:
    cache = TTLCache(default_ttl=300)
    metrics = await cache.cache_or_fetch("metrics:30", build_metrics)
"""
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from lib.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_TTL_SECONDS = 300


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """Key -> value store with a per-entry time-to-live."""

    def __init__(self, default_ttl: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        """Return the live value for key, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry.value

    def get_stale(self, key: str) -> Optional[Any]:
        """Return the stored value for key regardless of age."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any, ttl: float = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    async def cache_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        force_refresh: bool = False,
        ttl: float = None,
    ) -> Any:
        """
        Return a live cached value, or call fetcher and cache its result.

        If fetcher raises and any entry exists for key (even expired), the
        stale value is returned and a warning logged. With no entry at all
        the exception propagates.
        """
        if not force_refresh:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at > self._clock():
                logger.debug("Cache hit: %s", key)
                return entry.value

        try:
            value = await fetcher()
        except Exception as e:
            if key in self._entries:
                logger.warning("Fetch failed for %s, serving stale cache: %s", key, e)
                return self._entries[key].value
            raise

        self.set(key, value, ttl)
        return value
