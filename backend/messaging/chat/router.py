"""Messaging WebSocket endpoint.

This module provides:
    - WebSocket /ws: real-time 1:1 messaging for one device/tab

The WebSocket protocol supports:
    - Server-assigned connection ids
    - Multi-device registration per user
    - Message sending with per-user rate limiting
    - Fan-out to every live connection of both participants
    - Conversation-list refresh hints for new conversations
    - Heartbeat pings

Protocol Message Types:
    - register: Bind this connection to a user identity
    - sendMessage: Send a message to another user
    - pong: Heartbeat reply
"""
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .schemas import ClientEvent, ErrorCode, ErrorPayload, ServerEvent
from .service import get_chat_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_messaging_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time messaging.

    Protocol Flow:
        1. Client connects -> Server sends {type: "connected", connectionId}
        2. Client sends {type: "register", userIdentity}
           -> Server sends {type: "registered", userIdentity}
        3. Client sends {type: "sendMessage", to, text}
           -> Every live connection of sender and recipient receives
              {type: "receiveMessage", text, sender, recipient,
               conversationIdentity, id}
           -> On the first message of a conversation, both parties also
              receive {type: "revalidateConversations", with}
        4. Any failure -> origin only receives {type: "error", code, message}
        5. On disconnect -> registry state for the connection is removed

    Handlers for one connection run sequentially, so one tab's sends are
    processed in the order they arrive.
    """
    chat = get_chat_service()
    if chat is None:
        logger.error("[WS] Chat service not initialised; rejecting connection")
        await websocket.close(code=1011)
        return

    connection_id = await chat.lifecycle.connect(websocket)

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except (ValueError, KeyError, TypeError):
                # non-JSON text, or a binary frame with no text part
                await _emit_bad_frame(chat, connection_id, "Invalid message format: expected JSON text")
                continue

            if not isinstance(data, dict):
                await _emit_bad_frame(chat, connection_id, "Invalid message format: expected an object")
                continue

            message_type = data.get("type")
            logger.debug("[WS] %s received: type=%s", connection_id, message_type or "?")

            # --- Handle REGISTER (bind connection to user) ---
            if message_type == ClientEvent.REGISTER.value:
                await chat.lifecycle.register(connection_id, data)
                continue

            # --- Handle SEND MESSAGE ---
            if message_type == ClientEvent.SEND_MESSAGE.value:
                await chat.dispatcher.handle_frame(connection_id, data)
                continue

            # --- Handle heartbeat reply ---
            if message_type == ClientEvent.PONG.value:
                continue

            await _emit_bad_frame(chat, connection_id, f"Unknown message type: {message_type}")

    except WebSocketDisconnect:
        logger.info(f"[WS] Connection {connection_id} closed by client")
    finally:
        await chat.lifecycle.disconnect(connection_id)


async def _emit_bad_frame(chat, connection_id: str, message: str) -> None:
    await chat.hub.emit(
        connection_id,
        ServerEvent.ERROR.value,
        ErrorPayload(code=ErrorCode.MESSAGE_FAILED, message=message).model_dump(mode="json"),
    )
