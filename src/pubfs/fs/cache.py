"""TTLCache — in-process expiring key/value store with pattern invalidation."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .types import CacheStats

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL = 30 * 60.0  # seconds
WILDCARD = "*"
_MISSING = object()


@dataclass
class CacheEntry:
    """A cached value and when it was stored. Valid iff ``now < created_at + ttl``."""

    key: str
    value: Any
    created_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now < self.created_at + self.ttl


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a cache pattern where ``*`` matches any substring.

    Everything else matches literally, so keys containing ``?`` or ``[``
    need no escaping.
    """
    parts = (re.escape(part) for part in pattern.split(WILDCARD))
    return re.compile(".*".join(parts), re.DOTALL)


class TTLCache:
    """Expiring cache owned by one filesystem instance.

    Lookups evict stale entries on access, so :meth:`cleanup` is only a
    memory sweep and never needed for correctness. A TTL of zero stores an
    entry that is already expired.

    *clock* returns seconds; it defaults to ``time.monotonic`` and can be
    replaced in tests.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if default_ttl < 0:
            raise ValueError(f"default_ttl must be >= 0, got {default_ttl}")
        self.default_ttl = default_ttl
        self._clock = clock or time.monotonic
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or *default* on a miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("Cache miss: %s", key)
            return default
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            logger.debug("Cache expired: %s", key)
            return default
        logger.debug("Cache hit: %s", key)
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store *value* under *key* for *ttl* seconds (default TTL if omitted)."""
        ttl = self.default_ttl if ttl is None else ttl
        if ttl < 0:
            raise ValueError(f"ttl must be >= 0, got {ttl}")
        self._entries[key] = CacheEntry(key=key, value=value, created_at=self._clock(), ttl=ttl)

    def delete(self, key: str) -> bool:
        """Remove *key*. Returns True if an entry was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
        logger.debug("Cache cleared")

    def invalidate_pattern(self, pattern: str) -> int:
        """Remove every key matching *pattern* (``*`` is a wildcard).

        Returns the number of entries removed.
        """
        regex = compile_pattern(pattern)
        doomed = [key for key in self._entries if regex.fullmatch(key)]
        for key in doomed:
            del self._entries[key]
        logger.debug("Invalidated %d cache entries for pattern %r", len(doomed), pattern)
        return len(doomed)

    def cleanup(self) -> int:
        """Sweep expired entries. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Cache cleanup removed %d entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock()
        valid = sum(1 for entry in self._entries.values() if entry.is_valid(now))
        return CacheStats(total_entries=len(self._entries), valid_entries=valid)
