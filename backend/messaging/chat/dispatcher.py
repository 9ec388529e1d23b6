"""Send pipeline for 1:1 chat messages.

Protocol Flow (one ``sendMessage`` frame):
    1. Reject a missing recipient or empty text
    2. Resolve the sender from ``socket:<connection>`` (reject if unregistered)
    3. Reject self-messaging
    4. Consume a rate-limit slot (reject with RATE_LIMITED)
    5. Derive the conversation identity
    6. Probe the store for an earlier message of that conversation
    7. Persist the message
    8. Build the delivery payload
    9. Fan out to every live connection of the recipient and of the sender
   10. If the conversation is new, ask both parties to refresh their lists

Any rejection or failure in steps 1-8 is reported to the originating
connection only, as an ``error`` frame. Persistence happens before any
fan-out, so a failed write never leaks a half-delivered message; a crash
after the write leaves the message stored and recoverable via history.
"""
import logging
from typing import Any, Optional, Set

from pydantic import ValidationError

from messaging.registry import RegistryError
from messaging.store.schemas import Message
from messaging.store.service import MessageStore, StoreError

from .errors import SendMessageError
from .hub import ConnectionHub
from .identity import derive_conversation_id
from .rate_limiter import RateLimiter
from .registrar import ConnectionRegistrar
from .schemas import (
    DeliveryPayload,
    ErrorCode,
    ErrorPayload,
    RevalidatePayload,
    SendMessageInput,
    ServerEvent,
)

logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Recipient ID and message text are required."


class MessageDispatcher:
    """Validates, persists and fans out chat messages."""

    def __init__(
        self,
        registrar: ConnectionRegistrar,
        rate_limiter: RateLimiter,
        store: MessageStore,
        hub: ConnectionHub,
    ) -> None:
        self._registrar = registrar
        self._rate_limiter = rate_limiter
        self._store = store
        self._hub = hub

    async def handle_frame(self, connection_id: str, data: dict) -> Optional[Message]:
        """Handle a raw ``sendMessage`` frame from connection_id."""
        try:
            request = SendMessageInput.model_validate(data)
        except ValidationError:
            logger.warning(f"[Dispatch] Malformed sendMessage frame from {connection_id}")
            await self._emit_error(connection_id, ErrorCode.MESSAGE_FAILED, MISSING_FIELDS_MESSAGE)
            return None
        return await self.send(connection_id, request.to, request.text)

    async def send(self, connection_id: str, to: Any, text: Any) -> Optional[Message]:
        """Handle one send intent from connection_id.

        Never raises: every failure becomes an ``error`` frame on the
        originating connection.

        Returns:
            The stored Message, or None if the send was rejected or failed.
        """
        try:
            return await self._dispatch(connection_id, to, text)
        except SendMessageError as exc:
            logger.warning(f"[Dispatch] Send from {connection_id} rejected: {exc.message}")
            await self._emit_error(connection_id, exc.code, exc.message)
        except Exception:
            logger.exception(f"[Dispatch] Error sending message from {connection_id}")
            await self._emit_error(
                connection_id, ErrorCode.MESSAGE_FAILED, "Failed to send message"
            )
        return None

    async def _dispatch(self, connection_id: str, to: Any, text: Any) -> Message:
        if not isinstance(to, str) or not to or not isinstance(text, str) or not text:
            raise SendMessageError(MISSING_FIELDS_MESSAGE)

        try:
            sender = await self._registrar.resolve_user(connection_id)
        except RegistryError as exc:
            raise SendMessageError("Failed to send message") from exc
        if not sender:
            logger.warning(f"[Dispatch] Unregistered connection {connection_id} attempted to send")
            raise SendMessageError("User not registered.")

        if sender == to:
            raise SendMessageError("Cannot send messages to yourself.")

        try:
            allowed = await self._rate_limiter.allow(sender)
        except RegistryError as exc:
            raise SendMessageError("Failed to send message") from exc
        if not allowed:
            raise SendMessageError(
                "Rate limit exceeded. Please wait before sending more messages.",
                code=ErrorCode.RATE_LIMITED,
            )

        conversation_id = derive_conversation_id(sender, to)

        try:
            # Probe before the write so the first message counts as new
            is_new_conversation = self._store.find_by_conversation(conversation_id) is None
            message = self._store.create(sender, to, conversation_id, text)
        except StoreError as exc:
            raise SendMessageError("Failed to send message") from exc

        delivery = DeliveryPayload(
            text=message.text,
            sender=sender,
            recipient=to,
            conversationIdentity=conversation_id,
            id=message.id,
        ).model_dump()

        recipient_connections = await self._connections_of(to)
        sender_connections = await self._connections_of(sender)
        sender_connections.add(connection_id)

        await self._hub.emit_many(recipient_connections, ServerEvent.RECEIVE_MESSAGE.value, delivery)
        await self._hub.emit_many(sender_connections, ServerEvent.RECEIVE_MESSAGE.value, delivery)

        if is_new_conversation:
            await self._hub.emit_many(
                recipient_connections,
                ServerEvent.REVALIDATE_CONVERSATIONS.value,
                RevalidatePayload(with_=sender).model_dump(by_alias=True),
            )
            await self._hub.emit_many(
                sender_connections,
                ServerEvent.REVALIDATE_CONVERSATIONS.value,
                RevalidatePayload(with_=to).model_dump(by_alias=True),
            )

        logger.info(
            f"[Dispatch] Message {message.id} sent from {sender} to {to} "
            f"({len(recipient_connections)} recipient connections, new={is_new_conversation})"
        )
        return message

    async def _connections_of(self, user_id: str) -> Set[str]:
        # Fan-out is best effort once the message is stored.
        try:
            return await self._registrar.live_connections(user_id)
        except RegistryError as exc:
            logger.error(f"[Dispatch] Could not look up connections of {user_id}: {exc}")
            return set()

    async def _emit_error(self, connection_id: str, code: ErrorCode, message: str) -> None:
        await self._hub.emit(
            connection_id,
            ServerEvent.ERROR.value,
            ErrorPayload(code=code, message=message).model_dump(mode="json"),
        )
