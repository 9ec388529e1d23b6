"""Connect / register / disconnect handling for messaging sockets.

State machine per connection:

    Connected --register--> Registered
        |                       |
        +------disconnect-------+--> Disconnected (terminal)

Connecting writes nothing to the registry. Registering binds the connection
to a user via ConnectionRegistrar. Disconnecting removes the connection's
registry state and garbage-collects the user's socket set once it is empty.

The disconnect path is best effort: registry failures are logged and not
retried, and stale entries expire through the 24h TTL on ``socket:`` keys.
"""
import asyncio
import logging
import uuid
from enum import Enum
from typing import Dict, Optional

from fastapi import WebSocket

from messaging.auth.service import TokenService
from messaging.registry import (
    RegistryError,
    SharedRegistry,
    socket_key,
    user_sockets_key,
)

from .errors import RegistrationError
from .hub import ConnectionHub
from .registrar import ConnectionRegistrar
from .schemas import ErrorCode, ErrorPayload, RegisterInput, ServerEvent

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    REGISTERED = "registered"
    DISCONNECTED = "disconnected"


class ConnectionLifecycleManager:
    """Drives each connection through Connected -> Registered -> Disconnected.

    Security Model:
        By default the ``register`` frame is trusted as-is: whatever
        userIdentity the client names is bound to the connection. With
        ``bind_registration`` enabled, the identity is taken from the
        frame's session token instead and the client-supplied value is
        ignored.
    """

    def __init__(
        self,
        registry: SharedRegistry,
        registrar: ConnectionRegistrar,
        hub: ConnectionHub,
        token_service: Optional[TokenService] = None,
        bind_registration: bool = False,
        heartbeat_interval: float = 0,
    ) -> None:
        if bind_registration and token_service is None:
            raise ValueError("bind_registration requires a token service")
        self._registry = registry
        self._registrar = registrar
        self._hub = hub
        self._token_service = token_service
        self.bind_registration = bind_registration
        self.heartbeat_interval = heartbeat_interval

        # connection_id -> state
        self.states: Dict[str, ConnectionState] = {}

        # connection_id -> registered user (local cache for the heartbeat)
        self.users: Dict[str, str] = {}

        # connection_id -> heartbeat task
        self._heartbeats: Dict[str, asyncio.Task] = {}

    def state(self, connection_id: str) -> ConnectionState:
        return self.states.get(connection_id, ConnectionState.DISCONNECTED)

    async def connect(self, websocket: WebSocket) -> str:
        """Accept a socket and assign it a server-generated connection id."""
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        self._hub.add(connection_id, websocket)
        self.states[connection_id] = ConnectionState.CONNECTED
        logger.info(f"[Lifecycle] Connection {connection_id} opened ({len(self._hub)} live)")

        await self._hub.emit(
            connection_id, ServerEvent.CONNECTED.value, {"connectionId": connection_id}
        )
        if self.heartbeat_interval > 0:
            self._heartbeats[connection_id] = asyncio.create_task(
                self._heartbeat(connection_id)
            )
        return connection_id

    async def register(self, connection_id: str, data: dict) -> Optional[str]:
        """Handle a ``register`` frame.

        Returns:
            The registered user identity, or None if registration failed
            (an ``error`` frame has been sent to the connection).
        """
        try:
            request = RegisterInput.model_validate(data)
            user_id = self._resolve_identity(request)
            await self._registrar.register(connection_id, user_id)
        except (RegistrationError, ValueError) as exc:
            # ValueError covers pydantic validation of malformed frames
            logger.warning(f"[Lifecycle] Registration of {connection_id} failed: {exc}")
            await self._hub.emit(
                connection_id,
                ServerEvent.ERROR.value,
                ErrorPayload(
                    code=ErrorCode.MESSAGE_FAILED,
                    message="Failed to register with server",
                ).model_dump(mode="json"),
            )
            return None

        self.states[connection_id] = ConnectionState.REGISTERED
        self.users[connection_id] = user_id
        await self._hub.emit(
            connection_id, ServerEvent.REGISTERED.value, {"userIdentity": user_id}
        )
        return user_id

    def _resolve_identity(self, request: RegisterInput) -> str:
        if not self.bind_registration:
            return request.userIdentity or ""
        user_id = self._token_service.resolve_identity(request.token or "")
        if not user_id:
            raise RegistrationError("Invalid or missing session token.")
        if request.userIdentity and request.userIdentity != user_id:
            logger.warning(
                f"[Lifecycle] Ignoring client-supplied identity {request.userIdentity}; "
                f"token resolves to {user_id}"
            )
        return user_id

    async def disconnect(self, connection_id: str) -> Optional[str]:
        """Tear down all state for a closed connection.

        Safe to call for connections that never registered or were already
        cleaned up; those are no-ops.

        Returns:
            The user that owned the connection, if one was found.
        """
        self._hub.remove(connection_id)
        self.users.pop(connection_id, None)
        task = self._heartbeats.pop(connection_id, None)
        if task is not None:
            task.cancel()

        user_id: Optional[str] = None
        try:
            user_id = await self._registry.get(socket_key(connection_id))
            if user_id:
                await self._registry.set_remove(user_sockets_key(user_id), connection_id)
                await self._registry.delete(socket_key(connection_id))

                remaining = await self._registry.set_cardinality(user_sockets_key(user_id))
                if remaining == 0:
                    await self._registry.delete(user_sockets_key(user_id))
                    logger.info(f"[Lifecycle] User {user_id} is fully disconnected.")
                logger.info(f"[Lifecycle] Connection {connection_id} removed for user {user_id}")
        except RegistryError as exc:
            logger.error(f"[Lifecycle] Error handling disconnect of {connection_id}: {exc}")
        finally:
            self.states.pop(connection_id, None)
        return user_id

    async def _heartbeat(self, connection_id: str) -> None:
        """Ping the client periodically and keep its registration fresh."""
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if not await self._hub.emit(connection_id, ServerEvent.PING.value):
                return
            user_id = self.users.get(connection_id)
            if user_id:
                try:
                    await self._registrar.refresh(connection_id, user_id)
                except RegistryError as exc:
                    logger.warning(
                        f"[Lifecycle] Could not refresh registration of {connection_id}: {exc}"
                    )

    async def shutdown(self) -> None:
        """Cancel heartbeats and close every live socket."""
        for task in self._heartbeats.values():
            task.cancel()
        self._heartbeats.clear()
        await self._hub.close_all()
        logger.info("[Lifecycle] Socket cleanup completed.")
