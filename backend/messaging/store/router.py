"""Message history API endpoints.

Endpoints:
    POST   /messages/history: Paginated history between two users
    GET    /messages/conversations/{user_id}: Recent conversation partners
    POST   /messages/{message_id}/read: Mark a message read (recipient only)
    DELETE /messages/{message_id}: Soft-delete a message (sender only)

History is the pull-based complement to real-time delivery: anything a
client missed while offline (or that was stored but not pushed) is
recovered here.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from messaging.config import get_config

from .pagination import build_pagination_response, normalize_pagination
from .schemas import ConversationSummary, Message
from .service import MessageStore, StoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


# =============================================================================
# Request/Response Models
# =============================================================================


class HistoryRequest(BaseModel):
    """Request body for fetching the history between two users."""
    user1: str = Field(..., min_length=1, description="First participant")
    user2: str = Field(..., min_length=1, description="Second participant")


class ConversationsResponse(BaseModel):
    conversations: List[ConversationSummary] = Field(..., description="Newest first")


class MarkReadRequest(BaseModel):
    userIdentity: str = Field(..., min_length=1, description="The reader (must be the recipient)")


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/history")
async def get_messages(
    request: HistoryRequest,
    page: Optional[str] = Query(None, description="1-based page number"),
    limit: Optional[str] = Query(None, description="Page size (capped)"),
) -> dict:
    """Fetch messages between two users with pagination, newest first.

    Example:
        POST /messages/history?page=2&limit=20
        {"user1": "alice", "user2": "bob"}
    """
    pagination = get_config().pagination
    page_number, limit_number, skip = normalize_pagination(
        page,
        limit,
        default_limit=pagination.default_limit,
        max_limit=pagination.max_limit,
    )

    try:
        messages, total = MessageStore.get_instance().find_paginated(
            request.user1, request.user2, skip, limit_number
        )
    except StoreError as exc:
        logger.error("Error fetching messages: %s", exc)
        raise HTTPException(status_code=500, detail="Error fetching messages")

    response = build_pagination_response(messages, total, page_number, limit_number)
    return {
        **response.model_dump(mode="json"),
        "message": "Messages fetched successfully",
    }


@router.get("/conversations/{user_id}", response_model=ConversationsResponse)
async def get_conversations(user_id: str) -> ConversationsResponse:
    """List the users user_id has exchanged messages with, most recent first."""
    try:
        conversations = MessageStore.get_instance().recent_conversations(user_id)
    except StoreError as exc:
        logger.error("Error fetching conversations for %s: %s", user_id, exc)
        raise HTTPException(status_code=500, detail="Error fetching conversations")
    return ConversationsResponse(conversations=conversations)


@router.post("/{message_id}/read", response_model=Message)
async def mark_message_read(message_id: str, request: MarkReadRequest) -> Message:
    """Mark a message read. Only its recipient may do this."""
    try:
        message = MessageStore.get_instance().mark_read(message_id, request.userIdentity)
    except StoreError as exc:
        logger.error("Error marking message %s read: %s", message_id, exc)
        raise HTTPException(status_code=500, detail="Error updating message")
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return message


@router.delete("/{message_id}", response_model=Message)
async def delete_message(
    message_id: str,
    userIdentity: str = Query(..., min_length=1, description="The requester (must be the sender)"),
) -> Message:
    """Soft-delete a message. Only its sender may do this."""
    try:
        message = MessageStore.get_instance().soft_delete(message_id, userIdentity)
    except StoreError as exc:
        logger.error("Error deleting message %s: %s", message_id, exc)
        raise HTTPException(status_code=500, detail="Error updating message")
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return message
