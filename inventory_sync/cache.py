"""TTL cache — explicit, injectable key/value store with expiry.

Used for: the Shopify primary location id (1h TTL), which every inventory
push needs and which almost never changes.

One instance is created per connector (or shared by passing it in);
there is no module-level cache state, so tests get a fresh cache per
connector and can drive expiry with a fake clock.
"""

import logging
import time
from typing import Any, Callable

log = logging.getLogger(__name__)

_MISSING = object()


class TTLCache:
    """In-memory key -> (value, expiry) map with explicit invalidation."""

    def __init__(self, default_ttl: float = 300, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or default on miss/expiry."""
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            return default
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            log.debug("Cache expired: %s", key)
            return default
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = (value, self._clock() + ttl)

    def invalidate(self, key: str) -> bool:
        """Drop one key. Returns True if it was present."""
        return self._entries.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)
