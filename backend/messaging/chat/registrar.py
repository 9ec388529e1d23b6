"""Binds live connections to user identities in the shared registry.

Registration writes two inverse indexes:

    userSockets:<user>  += connection      (who are this user's devices?)
    socket:<connection>  = user, 24h TTL   (whose device is this?)

and joins the connection to the local broadcast group named after the user.
The TTL on the reverse mapping bounds what an ungracefully killed process
can leak; a live connection keeps it fresh through the heartbeat.
"""
import logging
from typing import Optional, Set

from messaging.registry import (
    RegistryError,
    SharedRegistry,
    socket_key,
    user_sockets_key,
)

from .errors import RegistrationError
from .hub import ConnectionHub

logger = logging.getLogger(__name__)

SOCKET_TTL_SECONDS = 24 * 60 * 60


class ConnectionRegistrar:
    """Reads and writes the connection <-> user indexes."""

    def __init__(
        self,
        registry: SharedRegistry,
        hub: ConnectionHub,
        socket_ttl_seconds: int = SOCKET_TTL_SECONDS,
    ) -> None:
        self._registry = registry
        self._hub = hub
        self.socket_ttl_seconds = socket_ttl_seconds

    async def register(self, connection_id: str, user_id: str) -> None:
        """Bind connection_id to user_id.

        Idempotent: registering the same pair twice leaves one set member.
        A connection re-registering as a different user is first detached
        from its previous owner, so one connection always maps to one user.

        Raises:
            RegistrationError: user_id is empty or the registry is unreachable.
        """
        if not user_id or not isinstance(user_id, str):
            raise RegistrationError("User identity is required.")

        try:
            previous = await self._registry.get(socket_key(connection_id))
            if previous and previous != user_id:
                await self._registry.set_remove(user_sockets_key(previous), connection_id)
                self._hub.leave(connection_id, previous)
                logger.info(
                    f"[Registrar] Connection {connection_id} moved from {previous} to {user_id}"
                )

            await self._registry.set_add(user_sockets_key(user_id), connection_id)
            await self._registry.set_with_ttl(
                socket_key(connection_id), user_id, self.socket_ttl_seconds
            )
        except RegistryError as exc:
            logger.error(f"[Registrar] Error registering user {user_id}: {exc}")
            raise RegistrationError("Failed to register with server") from exc

        self._hub.join(connection_id, user_id)
        logger.info(f"[Registrar] User {user_id} registered with connection {connection_id}")

    async def refresh(self, connection_id: str, user_id: str) -> None:
        """Push the reverse mapping's expiry forward for a live connection."""
        await self._registry.set_with_ttl(
            socket_key(connection_id), user_id, self.socket_ttl_seconds
        )

    async def resolve_user(self, connection_id: str) -> Optional[str]:
        """Return the user owning connection_id, or None if unregistered/expired."""
        return await self._registry.get(socket_key(connection_id))

    async def live_connections(self, user_id: str) -> Set[str]:
        """Return the user's connections whose reverse mapping is still valid.

        Members whose ``socket:`` entry expired or points at another user are
        stale registrations: they are treated as absent and pruned from the
        set on a best-effort basis.
        """
        members = await self._registry.set_members(user_sockets_key(user_id))
        live: Set[str] = set()
        for connection_id in members:
            owner = await self._registry.get(socket_key(connection_id))
            if owner == user_id:
                live.add(connection_id)
                continue
            logger.debug(f"[Registrar] Pruning stale connection {connection_id} of {user_id}")
            try:
                await self._registry.set_remove(user_sockets_key(user_id), connection_id)
            except RegistryError as exc:
                logger.warning(f"[Registrar] Could not prune {connection_id}: {exc}")
        return live
