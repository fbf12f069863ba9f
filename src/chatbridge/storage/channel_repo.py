"""Per-user directory of linked bot accounts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from chatbridge.core.errors import NotFound
from chatbridge.core.types import Platform
from chatbridge.log import get_logger
from chatbridge.storage.database import Database
from chatbridge.storage.message_repo import store_errors
from chatbridge.storage.models import ChannelRecord

logger = get_logger(__name__)

_UPDATABLE_FIELDS = frozenset(
    {"credential", "username", "first_name", "last_name", "is_active", "last_sync"}
)


class ChannelRepository:
    """CRUD over the ``channels`` table."""

    def __init__(self, db: Database):
        self._db = db

    async def list_user_ids(self) -> list[str]:
        with store_errors("list_user_ids"):
            cursor = await self._db.conn.execute(
                "SELECT DISTINCT user_id FROM channels ORDER BY user_id"
            )
            rows = await cursor.fetchall()
        return [row["user_id"] for row in rows]

    async def list_channels(
        self, user_id: str, platform: Optional[Platform] = None
    ) -> list[ChannelRecord]:
        with store_errors("list_channels"):
            if platform:
                cursor = await self._db.conn.execute(
                    "SELECT * FROM channels WHERE user_id = ? AND platform = ? ORDER BY rowid",
                    (user_id, str(platform)),
                )
            else:
                cursor = await self._db.conn.execute(
                    "SELECT * FROM channels WHERE user_id = ? ORDER BY rowid",
                    (user_id,),
                )
            rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def get_channel(
        self, user_id: str, platform: Platform, channel_id: str
    ) -> ChannelRecord | None:
        with store_errors("get_channel"):
            cursor = await self._db.conn.execute(
                "SELECT * FROM channels WHERE user_id = ? AND platform = ? AND channel_id = ?",
                (user_id, str(platform), channel_id),
            )
            row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def add_channel(self, record: ChannelRecord) -> None:
        """Insert a channel, overwriting an existing one with the same key."""
        with store_errors("add_channel"):
            await self._db.conn.execute(
                """INSERT INTO channels
                   (user_id, platform, channel_id, credential, username, first_name,
                    last_name, is_active, last_sync)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(user_id, platform, channel_id) DO UPDATE SET
                     credential = excluded.credential,
                     username = excluded.username,
                     first_name = excluded.first_name,
                     last_name = excluded.last_name,
                     is_active = excluded.is_active,
                     last_sync = excluded.last_sync""",
                (
                    record.user_id,
                    str(record.platform),
                    record.channel_id,
                    record.credential,
                    record.username,
                    record.first_name,
                    record.last_name,
                    int(record.is_active),
                    record.last_sync.isoformat() if record.last_sync else None,
                ),
            )
            await self._db.conn.commit()
        logger.info(
            "channel_saved",
            user_id=record.user_id,
            platform=str(record.platform),
            channel_id=record.channel_id,
        )

    async def update_channel(
        self, user_id: str, platform: Platform, channel_id: str, **changes: Any
    ) -> None:
        """Apply a partial update. Raises NotFound when no such channel exists."""
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown channel fields: {sorted(unknown)}")
        if not changes:
            return

        columns: list[str] = []
        values: list[Any] = []
        for name, value in changes.items():
            if name == "is_active":
                columns.append("is_active = ?")
                values.append(int(value))
            elif name == "last_sync":
                columns.append("last_sync = ?")
                values.append(value.isoformat() if value else None)
            else:
                columns.append(f"{name} = ?")
                values.append(value)

        with store_errors("update_channel"):
            cursor = await self._db.conn.execute(
                f"UPDATE channels SET {', '.join(columns)} "
                "WHERE user_id = ? AND platform = ? AND channel_id = ?",
                (*values, user_id, str(platform), channel_id),
            )
            await self._db.conn.commit()
        if cursor.rowcount == 0:
            raise NotFound(f"Channel {channel_id} not found")

    async def remove_channel(self, user_id: str, platform: Platform, channel_id: str) -> int:
        with store_errors("remove_channel"):
            cursor = await self._db.conn.execute(
                "DELETE FROM channels WHERE user_id = ? AND platform = ? AND channel_id = ?",
                (user_id, str(platform), channel_id),
            )
            await self._db.conn.commit()
        return cursor.rowcount

    @staticmethod
    def _row_to_record(row) -> ChannelRecord:
        return ChannelRecord(
            user_id=row["user_id"],
            platform=Platform(row["platform"]),
            channel_id=row["channel_id"],
            credential=row["credential"],
            username=row["username"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            is_active=bool(row["is_active"]),
            last_sync=datetime.fromisoformat(row["last_sync"]) if row["last_sync"] else None,
        )
