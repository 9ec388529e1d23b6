"""Per-user fixed-window send limiter backed by the shared registry.

Each send attempt increments ``rateLimit:<user>``; the first hit of a window
starts a window_seconds TTL. Attempts are allowed while the count stays at
or below max_messages. Because the window is fixed rather than sliding, a
burst straddling a window edge can reach twice the cap.

Slots are never refunded: an attempt that is rejected here, or that fails
later in the pipeline, still counts.
"""
import logging

from messaging.registry import SharedRegistry, rate_limit_key

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 5
DEFAULT_WINDOW_SECONDS = 10


class RateLimiter:
    def __init__(
        self,
        registry: SharedRegistry,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        self._registry = registry
        self.max_messages = max_messages
        self.window_seconds = window_seconds

    async def allow(self, user_id: str) -> bool:
        """Consume one slot for user_id and report whether the send may proceed.

        Raises:
            RegistryError: the registry is unreachable (callers fail closed).
        """
        count = await self._registry.incr_with_expiry(
            rate_limit_key(user_id), self.window_seconds
        )
        if count > self.max_messages:
            logger.warning(
                "Rate limit exceeded for user %s (%d/%d in %ds window)",
                user_id, count, self.max_messages, self.window_seconds,
            )
            return False
        return True
