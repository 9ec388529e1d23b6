"""Pydantic schemas for persisted chat messages.

These are used by:
    - MessageStore: DuckDB storage layer
    - MessageDispatcher: creates messages on every successful send
    - /messages HTTP endpoints: history pages and conversation lists
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class Message(BaseModel):
    """A stored 1:1 chat message.

    Messages are immutable once created apart from two status transitions:
    unread -> read (readAt set) and not-deleted -> deleted (soft delete).

    Attributes:
        id: Unique message identifier (uuid4 hex).
        sender: User identity of the author.
        recipient: User identity of the addressee.
        conversationId: Order-independent conversation identity of the pair.
        text: Message body.
        deleted: Soft-delete flag; deleted messages are hidden from history.
        createdAt: When the message was stored (UTC).
        readAt: When the recipient marked it read (UTC), None while unread.
    """
    id: str = Field(..., description="Unique message ID")
    sender: str = Field(..., description="Sender user identity")
    recipient: str = Field(..., description="Recipient user identity")
    conversationId: str = Field(..., description="Conversation identity")
    text: str = Field(..., description="Message text")
    deleted: bool = Field(default=False, description="Soft-delete flag")
    createdAt: datetime = Field(..., description="Creation time (UTC)")
    readAt: Optional[datetime] = Field(default=None, description="Read time (UTC)")

    @property
    def is_read(self) -> bool:
        return self.readAt is not None


class ConversationSummary(BaseModel):
    """One entry of a user's recent-conversations list."""
    userId: str = Field(..., description="The other participant")
    lastMessageAt: datetime = Field(..., description="Time of the newest message")


class PaginationInfo(BaseModel):
    total: int
    page: int
    pages: int
    limit: int
    hasNextPage: bool
    hasPrevPage: bool


class MessagePage(BaseModel):
    """Paginated history envelope returned by the history endpoint."""
    data: List[Message]
    pagination: PaginationInfo
