"""Shared registry backends for cross-process connection state."""
import logging

from messaging.config import AppConfig

from .base import (
    RATE_LIMIT_PREFIX,
    SOCKET_PREFIX,
    USER_SOCKETS_PREFIX,
    RegistryError,
    SharedRegistry,
    rate_limit_key,
    socket_key,
    user_sockets_key,
)
from .memory import InMemoryRegistry
from .redis_registry import RedisRegistry

logger = logging.getLogger(__name__)


def build_registry(config: AppConfig) -> SharedRegistry:
    """Create the registry backend selected by ``registry.backend``."""
    if config.registry.backend == "memory":
        logger.warning(
            "[Registry] Using in-memory registry; connection state is NOT "
            "shared across server instances."
        )
        return InMemoryRegistry()
    return RedisRegistry.from_url(
        config.redis.url,
        socket_timeout=config.redis.socket_timeout,
    )


__all__ = [
    "RATE_LIMIT_PREFIX",
    "SOCKET_PREFIX",
    "USER_SOCKETS_PREFIX",
    "InMemoryRegistry",
    "RedisRegistry",
    "RegistryError",
    "SharedRegistry",
    "build_registry",
    "rate_limit_key",
    "socket_key",
    "user_sockets_key",
]
