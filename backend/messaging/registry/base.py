"""SharedRegistry abstract interface.

The registry is the single source of truth for which connections belong to
which user and for per-user rate-limit counters. It has to live outside the
serving process because one user's devices may be connected to different
server instances.

Key schema (kept bit-exact so keys can be inspected with redis-cli):

    userSockets:<userId>   set of connection ids     no TTL, GC'd when empty
    socket:<connectionId>  owning userId             24h TTL
    rateLimit:<userId>     integer counter           rate-limit window TTL

Every operation is a single-key atomic operation at the registry. Callers
never need a multi-key transaction or an application-level lock.

Usage:
    from messaging.registry import build_registry

    registry = build_registry(config)
    await registry.set_add(user_sockets_key("u1"), "conn-1")
"""
from abc import ABC, abstractmethod
from typing import Optional, Set

USER_SOCKETS_PREFIX = "userSockets:"
SOCKET_PREFIX = "socket:"
RATE_LIMIT_PREFIX = "rateLimit:"


def user_sockets_key(user_id: str) -> str:
    return f"{USER_SOCKETS_PREFIX}{user_id}"


def socket_key(connection_id: str) -> str:
    return f"{SOCKET_PREFIX}{connection_id}"


def rate_limit_key(user_id: str) -> str:
    return f"{RATE_LIMIT_PREFIX}{user_id}"


class RegistryError(Exception):
    """Raised when the registry cannot be reached or rejects an operation."""


class SharedRegistry(ABC):
    """Atomic key/set store shared by every server instance.

    Implementations must raise RegistryError (never a backend-specific
    exception) so callers can fail closed uniformly.
    """

    @abstractmethod
    async def set_add(self, key: str, member: str) -> None:
        """Add a member to the set at key (no-op if already present)."""

    @abstractmethod
    async def set_remove(self, key: str, member: str) -> None:
        """Remove a member from the set at key (no-op if absent)."""

    @abstractmethod
    async def set_members(self, key: str) -> Set[str]:
        """Return all members of the set at key (empty if the key is absent)."""

    @abstractmethod
    async def set_cardinality(self, key: str) -> int:
        """Return the number of members of the set at key."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the string value at key, or None if absent or expired."""

    @abstractmethod
    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        """Set a string value that expires after ttl_seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key regardless of its type (no-op if absent)."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return True if key is present and not expired."""

    @abstractmethod
    async def incr_with_expiry(self, key: str, ttl_seconds: int) -> int:
        """Atomically increment the counter at key and return the new value.

        When the increment creates the counter (new value == 1) the key is
        given a ttl_seconds expiry in the same atomic step. Later increments
        in the window leave the expiry untouched, which makes the counter a
        fixed window.
        """

    async def ping(self) -> bool:
        """Return True if the registry is reachable."""
        return True

    async def close(self) -> None:
        """Release any client resources held by the registry."""
