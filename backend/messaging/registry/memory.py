"""In-process SharedRegistry.

Conformant replacement for Redis in single-instance deployments and tests.
All state lives in plain dicts on the event loop thread. None of the methods
awaits between reading and writing state, so each one is atomic with
respect to other coroutines.

Expiry is lazy: an expired key is purged the next time it is touched. The
clock is injectable so tests can step over a rate-limit window without
sleeping.
"""
import logging
import time
from typing import Callable, Dict, Optional, Set, Tuple

from .base import RegistryError, SharedRegistry

logger = logging.getLogger(__name__)


class InMemoryRegistry(SharedRegistry):
    """Dict-backed registry with Redis-like semantics."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        # key -> (value, expires_at or None)
        self._values: Dict[str, Tuple[str, Optional[float]]] = {}
        # key -> members; like Redis, a set key disappears when emptied
        self._sets: Dict[str, Set[str]] = {}

    def _live_value(self, key: str) -> Optional[str]:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._values[key]
            return None
        return value

    def _check_not_string(self, key: str) -> None:
        if self._live_value(key) is not None:
            raise RegistryError(f"WRONGTYPE: {key} holds a string value")

    async def set_add(self, key: str, member: str) -> None:
        self._check_not_string(key)
        self._sets.setdefault(key, set()).add(member)

    async def set_remove(self, key: str, member: str) -> None:
        members = self._sets.get(key)
        if members is None:
            return
        members.discard(member)
        if not members:
            del self._sets[key]

    async def set_members(self, key: str) -> Set[str]:
        return set(self._sets.get(key, ()))

    async def set_cardinality(self, key: str) -> int:
        return len(self._sets.get(key, ()))

    async def get(self, key: str) -> Optional[str]:
        if key in self._sets:
            raise RegistryError(f"WRONGTYPE: {key} holds a set")
        return self._live_value(key)

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        self._sets.pop(key, None)
        self._values[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._sets.pop(key, None)

    async def exists(self, key: str) -> bool:
        return key in self._sets or self._live_value(key) is not None

    async def incr_with_expiry(self, key: str, ttl_seconds: int) -> int:
        if key in self._sets:
            raise RegistryError(f"WRONGTYPE: {key} holds a set")
        current = self._live_value(key)
        try:
            count = int(current or 0) + 1
        except ValueError:
            raise RegistryError(f"value at {key} is not an integer")

        if count == 1:
            self._values[key] = (str(count), self._clock() + ttl_seconds)
        else:
            _, expires_at = self._values[key]
            self._values[key] = (str(count), expires_at)
        return count

    def clear(self) -> None:
        """Drop every key (test helper)."""
        self._values.clear()
        self._sets.clear()
