"""In-memory cache with TTL support."""

import logging
import time


logger = logging.getLogger(__name__)


class InMemoryCache:
    """Process-local cache with optional per-entry TTL.

    Writes for a key always carry the same value once known, so concurrent writers converge
    without locking.
    """

    def __init__(self) -> None:
        """Initialize in-memory cache."""
        self._data: dict[str, str] = {}
        self._expiry: dict[str, float] = {}

    def _cleanup_expired(self, keys: list[str] | None = None) -> None:
        """Clean up expired entries.

        Args:
            keys: Specific keys to check. If None, checks all keys.
        """
        now = time.time()
        keys_to_check = list(self._expiry.keys()) if keys is None else keys

        for key in keys_to_check:
            expiry = self._expiry.get(key)
            if expiry and expiry < now:
                self._data.pop(key, None)
                self._expiry.pop(key, None)

    async def get(self, key: str) -> str | None:
        """Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found or expired
        """
        self._cleanup_expired([key])

        value = self._data.get(key)
        if value is not None:
            logger.debug("Cache hit for key: %s", key)
        return value

    async def get_many(self, keys: list[str]) -> dict[str, str]:
        """Return the cached values for whichever of ``keys`` are present."""
        found = {}
        for key in keys:
            value = await self.get(key)
            if value is not None:
                found[key] = value
        return found

    async def set(self, key: str, value: str, ttl_seconds: int = 0) -> bool:
        """Set value in cache with TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Time-to-live in seconds (0 keeps the entry until the process exits)

        Returns:
            True if successful
        """
        self._data[key] = value
        if ttl_seconds > 0:
            self._expiry[key] = time.time() + ttl_seconds
        else:
            self._expiry.pop(key, None)
        logger.debug("Cached key: %s (TTL: %ds)", key, ttl_seconds)
        return True
