"""Redis-backed SharedRegistry.

Uses the asyncio client from redis-py with ``decode_responses=True`` so every
value comes back as ``str``. Redis errors are logged and re-raised as
RegistryError; nothing here retries (retry policy belongs to the caller).
"""
import logging
from typing import Awaitable, Optional, Set, TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from .base import RegistryError, SharedRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# INCR and first-hit EXPIRE run as one script so a crash between the two
# can never leave a counter without a TTL.
_INCR_WITH_EXPIRY = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return count
"""


class RedisRegistry(SharedRegistry):
    """SharedRegistry implementation on top of a Redis server."""

    def __init__(self, client: "redis.Redis") -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, socket_timeout: Optional[float] = None) -> "RedisRegistry":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
        )
        logger.info("[Registry] Redis registry configured for %s", url)
        return cls(client)

    @property
    def client(self) -> "redis.Redis":
        return self._client

    async def _run(self, op: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except (RedisError, OSError) as exc:
            logger.error("[Registry] %s failed: %s", op, exc)
            raise RegistryError(f"{op} failed: {exc}") from exc

    async def set_add(self, key: str, member: str) -> None:
        await self._run("SADD", self._client.sadd(key, member))

    async def set_remove(self, key: str, member: str) -> None:
        await self._run("SREM", self._client.srem(key, member))

    async def set_members(self, key: str) -> Set[str]:
        members = await self._run("SMEMBERS", self._client.smembers(key))
        return set(members or ())

    async def set_cardinality(self, key: str) -> int:
        return int(await self._run("SCARD", self._client.scard(key)))

    async def get(self, key: str) -> Optional[str]:
        return await self._run("GET", self._client.get(key))

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._run("SET", self._client.set(key, value, ex=ttl_seconds))

    async def delete(self, key: str) -> None:
        await self._run("DEL", self._client.delete(key))

    async def exists(self, key: str) -> bool:
        return bool(await self._run("EXISTS", self._client.exists(key)))

    async def incr_with_expiry(self, key: str, ttl_seconds: int) -> int:
        count = await self._run(
            "INCR", self._client.eval(_INCR_WITH_EXPIRY, 1, key, ttl_seconds)
        )
        return int(count)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError):
            return False

    async def close(self) -> None:
        await self._client.aclose()
