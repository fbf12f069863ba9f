"""SQLite database connection manager with schema migration."""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from chatbridge.log import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS messages (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id         TEXT    NOT NULL,
    sender_id       TEXT    NOT NULL,
    sender_type     TEXT    NOT NULL CHECK(sender_type IN ('user','bot')),
    content         TEXT    NOT NULL,
    is_read         INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_chat
    ON messages(chat_id, id);

CREATE INDEX IF NOT EXISTS idx_messages_unread
    ON messages(chat_id, is_read);

CREATE TABLE IF NOT EXISTS channels (
    user_id         TEXT    NOT NULL,
    platform        TEXT    NOT NULL,
    channel_id      TEXT    NOT NULL,
    credential      TEXT,
    username        TEXT,
    first_name      TEXT,
    last_name       TEXT,
    is_active       INTEGER NOT NULL DEFAULT 1,
    last_sync       TEXT,
    PRIMARY KEY (user_id, platform, channel_id)
);
"""


class Database:
    """Async SQLite database manager."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection and run migrations."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()
        logger.info("database_initialized", path=self._db_path)

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed")
