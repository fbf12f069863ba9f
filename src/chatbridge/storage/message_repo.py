"""Append-only chat message log with read-state tracking."""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

import aiosqlite

from chatbridge.core.errors import StoreError
from chatbridge.core.types import SenderType
from chatbridge.log import get_logger
from chatbridge.storage.database import Database
from chatbridge.storage.models import MessageRecord

logger = get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 50


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Re-raise sqlite and connection failures as StoreError."""
    try:
        yield
    except (aiosqlite.Error, RuntimeError) as e:
        logger.error("store_operation_failed", operation=operation, error=str(e))
        raise StoreError(f"{operation} failed: {e}") from e


class MessageStore:
    """Durable message log.

    Ordering is by the autoincrement row id, so messages for a chat keep the
    order in which they were accepted even when timestamps collide.
    """

    def __init__(self, db: Database):
        self._db = db
        self._write_lock = asyncio.Lock()

    async def append(
        self, chat_id: str, sender_id: str, sender_type: SenderType, content: str
    ) -> MessageRecord:
        """Persist a new unread message and return the stored record."""
        now = datetime.now(timezone.utc)
        with store_errors("append"):
            async with self._write_lock:
                cursor = await self._db.conn.execute(
                    """INSERT INTO messages
                       (chat_id, sender_id, sender_type, content, is_read, created_at)
                       VALUES (?, ?, ?, ?, 0, ?)""",
                    (chat_id, sender_id, str(sender_type), content, now.isoformat()),
                )
                await self._db.conn.commit()
        return MessageRecord(
            id=cursor.lastrowid,
            chat_id=chat_id,
            sender_id=sender_id,
            sender_type=SenderType(sender_type),
            content=content,
            is_read=False,
            timestamp=now,
        )

    async def unread(self, user_id: str) -> list[MessageRecord]:
        """Unread messages addressed to ``user_id``, oldest first."""
        with store_errors("unread"):
            cursor = await self._db.conn.execute(
                "SELECT * FROM messages WHERE chat_id = ? AND is_read = 0 ORDER BY id ASC",
                (user_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def mark_read(self, chat_id: str) -> int:
        """Flag every unread message of the chat as read. Returns rows changed."""
        with store_errors("mark_read"):
            async with self._write_lock:
                cursor = await self._db.conn.execute(
                    "UPDATE messages SET is_read = 1 WHERE chat_id = ? AND is_read = 0",
                    (chat_id,),
                )
                await self._db.conn.commit()
        return cursor.rowcount

    async def history(
        self, chat_id: str, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> list[MessageRecord]:
        """Most recent messages of the chat, newest first."""
        with store_errors("history"):
            cursor = await self._db.conn.execute(
                "SELECT * FROM messages WHERE chat_id = ? ORDER BY id DESC LIMIT ?",
                (chat_id, limit),
            )
            rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row) -> MessageRecord:
        return MessageRecord(
            id=row["id"],
            chat_id=row["chat_id"],
            sender_id=row["sender_id"],
            sender_type=SenderType(row["sender_type"]),
            content=row["content"],
            is_read=bool(row["is_read"]),
            timestamp=datetime.fromisoformat(row["created_at"]),
        )
