"""Process-local table of live WebSocket connections.

The shared registry knows which connection ids belong to a user across the
whole cluster; the hub knows which of those ids are sockets held by THIS
process and how to write to them.

Key features:
    - Connection id -> WebSocket lookup for targeted emits
    - Named broadcast groups (one per registered user)
    - Concurrent fan-out with asyncio.gather()
    - Automatic dead connection cleanup on failed sends

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    It is NOT thread-safe for concurrent access from multiple threads.
"""
import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Holds the live sockets of this process and their group memberships."""

    def __init__(self) -> None:
        # connection_id -> live WebSocket
        self.connections: Dict[str, WebSocket] = {}

        # group name -> connection ids
        self.groups: Dict[str, Set[str]] = {}

        # connection_id -> group names, for leave-on-remove
        self.memberships: Dict[str, Set[str]] = {}

    def add(self, connection_id: str, websocket: WebSocket) -> None:
        self.connections[connection_id] = websocket
        self.memberships.setdefault(connection_id, set())

    def remove(self, connection_id: str) -> Optional[WebSocket]:
        """Forget a connection and drop it from every group it joined."""
        for group in self.memberships.pop(connection_id, set()):
            self._discard_from_group(group, connection_id)
        return self.connections.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[WebSocket]:
        return self.connections.get(connection_id)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self.connections

    def __len__(self) -> int:
        return len(self.connections)

    # =========================================================================
    # Groups
    # =========================================================================

    def join(self, connection_id: str, group: str) -> None:
        self.groups.setdefault(group, set()).add(connection_id)
        self.memberships.setdefault(connection_id, set()).add(group)

    def leave(self, connection_id: str, group: str) -> None:
        self._discard_from_group(group, connection_id)
        self.memberships.get(connection_id, set()).discard(group)

    def group_members(self, group: str) -> Set[str]:
        return set(self.groups.get(group, ()))

    def _discard_from_group(self, group: str, connection_id: str) -> None:
        members = self.groups.get(group)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self.groups[group]

    # =========================================================================
    # Emitting
    # =========================================================================

    async def emit(self, connection_id: str, event: str, payload: Optional[dict] = None) -> bool:
        """Send one event to one connection held by this process.

        Returns:
            True if the frame was written, False if the connection is not
            local or the send failed (in which case it is dropped).
        """
        websocket = self.connections.get(connection_id)
        if websocket is None:
            logger.debug(f"Connection {connection_id} is not held by this process")
            return False
        return await self._safe_send(connection_id, websocket, {"type": event, **(payload or {})})

    async def emit_many(
        self, connection_ids: Iterable[str], event: str, payload: Optional[dict] = None
    ) -> int:
        """Send the same event to several connections concurrently.

        Emissions are independent; there is no ordering between them.

        Returns:
            Number of connections the frame was written to.
        """
        targets = list(dict.fromkeys(connection_ids))
        if not targets:
            return 0
        results = await asyncio.gather(
            *[self.emit(conn_id, event, payload) for conn_id in targets],
            return_exceptions=True,
        )
        return sum(1 for result in results if result is True)

    async def emit_group(self, group: str, event: str, payload: Optional[dict] = None) -> int:
        return await self.emit_many(self.group_members(group), event, payload)

    async def _safe_send(self, connection_id: str, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection {connection_id}: {e}")
            self._cleanup_connections([connection_id])
            return False

    def _cleanup_connections(self, failed_connections: List[str]) -> None:
        for connection_id in failed_connections:
            if connection_id in self.connections:
                self.remove(connection_id)
                logger.debug(f"Removed dead connection {connection_id}")

    async def close_all(self, code: int = 1001) -> None:
        """Close every live socket (used on shutdown)."""
        for connection_id in list(self.connections):
            websocket = self.remove(connection_id)
            if websocket is None:
                continue
            try:
                await websocket.close(code=code)
            except Exception as e:
                logger.debug(f"Error closing connection {connection_id}: {e}")
