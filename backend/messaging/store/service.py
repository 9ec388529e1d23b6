"""DuckDB-based message storage service.

This module provides persistent storage for 1:1 chat messages using DuckDB,
a fast embedded analytical database. The service implements the singleton
pattern to ensure only one database connection exists at a time.

Database Schema:
    messages table:
        - seq: Auto-incrementing insertion order (tie-breaker for sorting)
        - id: Message identifier (uuid4 hex), primary key
        - sender / recipient: User identities
        - conversation_id: Order-independent pair identity (indexed)
        - text: Message body
        - deleted: Soft-delete flag; rows are never physically removed
        - read_at: When the recipient read the message (NULL while unread)
        - created_at: When the message was stored (UTC)

Thread Safety:
    The DuckDB connection is NOT thread-safe. In production with multiple
    workers, each process will have its own connection to the same file.

Usage:
    store = MessageStore.get_instance()
    message = store.create("alice", "bob", "alice_bob", "hi")
    page, total = store.find_paginated("alice", "bob", skip=0, limit=20)
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple

import duckdb

from messaging.chat.identity import derive_conversation_id

from .schemas import ConversationSummary, Message

logger = logging.getLogger(__name__)

_COLUMNS = "id, sender, recipient, conversation_id, text, deleted, created_at, read_at"


def _utcnow() -> datetime:
    # created_at/read_at are naive TIMESTAMP columns holding UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StoreError(Exception):
    """Raised when the message database rejects or fails an operation."""


class MessageStore:
    """Singleton service for storing chat messages in DuckDB.

    Attributes:
        _instance: Singleton instance of the service.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["MessageStore"] = None
    _db_path: str = "messages.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Initialize the message store.

        Creates the database file and schema if they don't exist.

        Args:
            db_path: Path to DuckDB file. Defaults to "messages.duckdb".
                     Use ":memory:" for a throwaway database.
        """
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()
        logger.info("[Store] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "MessageStore":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and clear the singleton (used by tests)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute("CREATE SEQUENCE IF NOT EXISTS messages_seq START 1")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                seq BIGINT DEFAULT nextval('messages_seq'),
                id VARCHAR PRIMARY KEY,
                sender VARCHAR NOT NULL,
                recipient VARCHAR NOT NULL,
                conversation_id VARCHAR NOT NULL,
                text VARCHAR NOT NULL,
                deleted BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TIMESTAMP NOT NULL,
                read_at TIMESTAMP
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_messages_conversation "
            "ON messages(conversation_id)"
        )

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> duckdb.DuckDBPyConnection:
        try:
            return self._get_connection().execute(sql, list(params))
        except duckdb.Error as exc:
            logger.error("[Store] Query failed: %s", exc)
            raise StoreError(str(exc)) from exc

    @staticmethod
    def _row_to_message(row: Tuple) -> Message:
        return Message(
            id=row[0],
            sender=row[1],
            recipient=row[2],
            conversationId=row[3],
            text=row[4],
            deleted=row[5],
            createdAt=row[6],
            readAt=row[7],
        )

    # -----------------------------------------------------------------------
    # Queries used by the dispatcher
    # -----------------------------------------------------------------------

    def find_by_conversation(self, conversation_id: str) -> Optional[Message]:
        """Return any one message of the conversation, or None if there is none.

        Soft-deleted messages count: a conversation whose messages were all
        deleted still exists.
        """
        row = self._execute(
            f"SELECT {_COLUMNS} FROM messages WHERE conversation_id = ? LIMIT 1",
            [conversation_id],
        ).fetchone()
        return self._row_to_message(row) if row else None

    def create(
        self, sender: str, recipient: str, conversation_id: str, text: str
    ) -> Message:
        """Insert a new unread, not-deleted message and return it."""
        message = Message(
            id=uuid.uuid4().hex,
            sender=sender,
            recipient=recipient,
            conversationId=conversation_id,
            text=text,
            createdAt=_utcnow(),
        )
        self._execute(
            """
            INSERT INTO messages (id, sender, recipient, conversation_id, text, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                message.id,
                message.sender,
                message.recipient,
                message.conversationId,
                message.text,
                message.createdAt,
            ],
        )
        return message

    # -----------------------------------------------------------------------
    # History
    # -----------------------------------------------------------------------

    def find_paginated(
        self, user_a: str, user_b: str, skip: int, limit: int
    ) -> Tuple[List[Message], int]:
        """Return one page of the conversation between two users.

        Messages in both directions are included, newest first, excluding
        soft-deleted ones. skip/limit are expected to be normalized already.

        Returns:
            Tuple of (messages, total non-deleted messages in the conversation).
        """
        conversation_id = derive_conversation_id(user_a, user_b)
        rows = self._execute(
            f"""
            SELECT {_COLUMNS} FROM messages
            WHERE conversation_id = ? AND deleted = FALSE
            ORDER BY created_at DESC, seq DESC
            LIMIT ? OFFSET ?
            """,
            [conversation_id, limit, skip],
        ).fetchall()
        total = self._execute(
            "SELECT count(*) FROM messages WHERE conversation_id = ? AND deleted = FALSE",
            [conversation_id],
        ).fetchone()[0]
        return [self._row_to_message(row) for row in rows], int(total)

    def recent_conversations(self, user_id: str) -> List[ConversationSummary]:
        """List everyone the user has exchanged messages with, newest first."""
        rows = self._execute(
            """
            SELECT CASE WHEN sender = ? THEN recipient ELSE sender END AS other_user,
                   max(created_at) AS last_message_at,
                   max(seq) AS last_seq
            FROM messages
            WHERE (sender = ? OR recipient = ?) AND deleted = FALSE
            GROUP BY 1
            ORDER BY last_message_at DESC, last_seq DESC
            """,
            [user_id, user_id, user_id],
        ).fetchall()
        return [
            ConversationSummary(userId=row[0], lastMessageAt=row[1])
            for row in rows
        ]

    # -----------------------------------------------------------------------
    # Status transitions
    # -----------------------------------------------------------------------

    def get(self, message_id: str) -> Optional[Message]:
        row = self._execute(
            f"SELECT {_COLUMNS} FROM messages WHERE id = ?", [message_id]
        ).fetchone()
        return self._row_to_message(row) if row else None

    def mark_read(self, message_id: str, reader: str) -> Optional[Message]:
        """Mark a message read on behalf of its recipient.

        Returns None if the message does not exist, is deleted, or reader is
        not its recipient. Marking an already read message keeps the first
        read timestamp.
        """
        message = self.get(message_id)
        if message is None or message.deleted or message.recipient != reader:
            return None
        if message.readAt is None:
            self._execute(
                "UPDATE messages SET read_at = ? WHERE id = ? AND read_at IS NULL",
                [_utcnow(), message_id],
            )
            message = self.get(message_id)
        return message

    def soft_delete(self, message_id: str, requester: str) -> Optional[Message]:
        """Hide a message from history on behalf of its sender.

        Returns None if the message does not exist or requester is not its
        sender.
        """
        message = self.get(message_id)
        if message is None or message.sender != requester:
            return None
        if not message.deleted:
            self._execute("UPDATE messages SET deleted = TRUE WHERE id = ?", [message_id])
            logger.info("[Store] Message %s soft-deleted by %s", message_id, requester)
            message = self.get(message_id)
        return message

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
