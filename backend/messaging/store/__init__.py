"""Message persistence: DuckDB store, pagination and history endpoints."""

from .pagination import build_pagination_response, normalize_pagination
from .schemas import ConversationSummary, Message, MessagePage, PaginationInfo
from .service import MessageStore, StoreError

__all__ = [
    "ConversationSummary",
    "Message",
    "MessagePage",
    "MessageStore",
    "PaginationInfo",
    "StoreError",
    "build_pagination_response",
    "normalize_pagination",
]
