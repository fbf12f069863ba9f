"""Bridge lifecycle manager: one live bot session per user.

Every path that opens or closes a bridge (administrative calls, lazy opening
on send, boot-time restore, shutdown) goes through the same
:class:`BridgeRegistry`. A user's slot is claimed before any network call so
that concurrent callers race on a synchronous check-and-insert, and a bridge
is always stopped before its slot is released.

Lifecycle transitions for one user also run under that user's lock, so the
registry and the channel's active flag change together: no caller can see a
channel as active and open a bridge while another is tearing it down.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable

from chatbridge.core.bridge_registry import BridgeConnection, BridgeRegistry
from chatbridge.core.errors import (
    AlreadyConnected,
    AlreadyRunning,
    ExternalPlatformError,
    NoActiveChannel,
    NotFound,
    NotRunning,
    RelayError,
)
from chatbridge.core.types import Platform
from chatbridge.log import get_logger
from chatbridge.messenger.base import PlatformSession, SessionFactory
from chatbridge.messenger.models import BotIdentity, IncomingMessage
from chatbridge.storage.channel_repo import ChannelRepository
from chatbridge.storage.models import ChannelRecord

logger = get_logger(__name__)

# (chat_id, content, channel_id)
InboundSink = Callable[[str, str, str], Awaitable[None]]


class BridgeManager:
    """Owns the user -> bridge registry and every transition on it."""

    def __init__(
        self,
        channels: ChannelRepository,
        session_factory: SessionFactory,
        platform: Platform = Platform.TELEGRAM,
    ):
        self._channels = channels
        self._session_factory = session_factory
        self._platform = platform
        self._registry = BridgeRegistry()
        self._user_locks: dict[str, asyncio.Lock] = {}
        self._inbound_sink: InboundSink | None = None

    @property
    def registry(self) -> BridgeRegistry:
        return self._registry

    def on_inbound(self, sink: InboundSink) -> None:
        """Register where inbound platform messages are delivered."""
        self._inbound_sink = sink

    def is_running(self, user_id: str) -> bool:
        return user_id in self._registry

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        return self._user_locks.setdefault(user_id, asyncio.Lock())

    # -- administrative operations -------------------------------------------------

    async def connect(self, user_id: str, credential: str) -> BotIdentity:
        """Link a bot account to the user and start bridging it."""
        async with self._lock_for(user_id):
            return await self._connect(user_id, credential)

    async def _connect(self, user_id: str, credential: str) -> BotIdentity:
        session = self._session_factory(credential)
        conn: BridgeConnection | None = None
        try:
            try:
                identity = await session.identify()
            except Exception as e:
                raise ExternalPlatformError(f"Failed to connect Telegram account: {e}") from e

            existing = await self._channels.get_channel(user_id, self._platform, identity.id)
            if existing and existing.is_active:
                raise AlreadyConnected("This Telegram bot is already connected and active")

            candidate = BridgeConnection(user_id=user_id, channel_id=identity.id, session=session)
            if not self._registry.try_register(candidate):
                raise AlreadyRunning("Bot is already running for this user")
            conn = candidate

            await self._start_session(conn)

            now = datetime.now(timezone.utc)
            if existing:
                await self._channels.update_channel(
                    user_id,
                    self._platform,
                    identity.id,
                    credential=credential,
                    username=identity.username,
                    first_name=identity.first_name,
                    last_name=identity.last_name,
                    is_active=True,
                    last_sync=now,
                )
            else:
                await self._channels.add_channel(
                    ChannelRecord(
                        user_id=user_id,
                        platform=self._platform,
                        channel_id=identity.id,
                        credential=credential,
                        username=identity.username,
                        first_name=identity.first_name,
                        last_name=identity.last_name,
                        is_active=True,
                        last_sync=now,
                    )
                )
        except Exception:
            if conn is not None:
                await self._teardown(conn)
            else:
                await self._close_session(session, user_id=user_id)
            raise

        logger.info(
            "bridge_connected",
            user_id=user_id,
            channel_id=identity.id,
            reactivated=existing is not None,
        )
        return identity

    async def start(self, user_id: str, channel_id: str) -> None:
        """Start the bridge for an already linked channel."""
        async with self._lock_for(user_id):
            record = await self._channels.get_channel(user_id, self._platform, channel_id)
            if record is None or not record.credential:
                raise NotFound("Telegram channel not found or access token missing")

            conn = await self._open_bridge(user_id, record)
            try:
                await self._channels.update_channel(
                    user_id,
                    self._platform,
                    channel_id,
                    is_active=True,
                    last_sync=datetime.now(timezone.utc),
                )
            except Exception:
                await self._teardown(conn)
                raise
        logger.info("bridge_started", user_id=user_id, channel_id=channel_id)

    async def disconnect(self, user_id: str, channel_id: str) -> None:
        """Stop the channel's bridge and mark the channel inactive."""
        async with self._lock_for(user_id):
            record = await self._channels.get_channel(user_id, self._platform, channel_id)
            if record is None:
                raise NotFound("Telegram channel not found")

            conn = self._registry.get(user_id)
            if conn is None or conn.channel_id != channel_id:
                raise NotRunning("Bot is not running for this channel")

            await self._teardown(conn)
            await self._channels.update_channel(
                user_id, self._platform, channel_id, is_active=False
            )
        logger.info("bridge_disconnected", user_id=user_id, channel_id=channel_id)

    async def delete(self, user_id: str, channel_id: str) -> None:
        """Stop the channel's bridge if it is running, then remove the record."""
        async with self._lock_for(user_id):
            conn = self._registry.get(user_id)
            if conn is not None and conn.channel_id == channel_id:
                await self._teardown(conn)

            record = await self._channels.get_channel(user_id, self._platform, channel_id)
            if record is None:
                raise NotFound("Telegram channel not found")

            await self._channels.remove_channel(user_id, self._platform, channel_id)
        logger.info("channel_deleted", user_id=user_id, channel_id=channel_id)

    async def send_outbound(self, user_id: str, chat_id: str, content: str) -> None:
        """Forward a client message through the user's active bot."""
        async with self._lock_for(user_id):
            channels = await self._channels.list_channels(user_id, self._platform)
            channel = next((ch for ch in channels if ch.is_active and ch.credential), None)
            if channel is None:
                raise NoActiveChannel("No active Telegram channel found")

            conn = self._registry.get(user_id)
            if conn is None:
                conn = await self._open_bridge(user_id, channel)
                logger.info(
                    "bridge_opened_on_send", user_id=user_id, channel_id=channel.channel_id
                )

        # the network round trip runs outside the lock; a bridge closed meanwhile fails here
        try:
            await conn.session.send_text(chat_id, content)
        except Exception as e:
            raise ExternalPlatformError(f"Failed to send message: {e}") from e

    async def list_accounts(self, user_id: str) -> list[dict]:
        channels = await self._channels.list_channels(user_id, self._platform)
        return [
            {
                "channelId": ch.channel_id,
                "username": ch.username,
                "firstName": ch.first_name,
                "lastName": ch.last_name,
                "isActive": ch.is_active,
                "lastSync": ch.last_sync.isoformat() if ch.last_sync else None,
            }
            for ch in channels
        ]

    # -- boot / shutdown ---------------------------------------------------------

    async def restore_all(self) -> int:
        """Reopen bridges for every active channel. Returns how many were opened."""
        user_ids = await self._channels.list_user_ids()
        counts = await asyncio.gather(*(self._restore_user(uid) for uid in user_ids))
        restored = sum(counts)
        logger.info("bridges_restored", restored=restored, users=len(user_ids))
        return restored

    async def stop_all(self) -> None:
        """Close every bridge. Channel records keep their active flag."""
        conns = self._registry.all()
        await asyncio.gather(*(self._teardown(conn) for conn in conns))
        logger.info("bridges_stopped", count=len(conns))

    async def _restore_user(self, user_id: str) -> int:
        async with self._lock_for(user_id):
            try:
                channels = await self._channels.list_channels(user_id, self._platform)
            except RelayError as e:
                logger.error("bridge_restore_lookup_failed", user_id=user_id, error=str(e))
                return 0

            for record in channels:
                if not record.is_active or not record.credential:
                    continue
                if user_id in self._registry:
                    return 0
                try:
                    await self._open_bridge(user_id, record)
                except Exception as e:
                    logger.warning(
                        "bridge_restore_failed",
                        user_id=user_id,
                        channel_id=record.channel_id,
                        error=str(e),
                    )
                    await self._demote(user_id, record.channel_id)
                    continue
                logger.info("bridge_restored", user_id=user_id, channel_id=record.channel_id)
                return 1
        return 0

    async def _demote(self, user_id: str, channel_id: str) -> None:
        try:
            await self._channels.update_channel(
                user_id, self._platform, channel_id, is_active=False
            )
        except RelayError as e:
            logger.error(
                "channel_demote_failed", user_id=user_id, channel_id=channel_id, error=str(e)
            )

    # -- internals -------------------------------------------------------------

    async def _open_bridge(self, user_id: str, record: ChannelRecord) -> BridgeConnection:
        if not record.credential:
            raise NotFound("Telegram channel has no access token")
        conn = BridgeConnection(
            user_id=user_id,
            channel_id=record.channel_id,
            session=self._session_factory(record.credential),
        )
        if not self._registry.try_register(conn):
            raise AlreadyRunning("Bot is already running for this user")
        try:
            await self._start_session(conn)
        except Exception:
            await self._teardown(conn)
            raise
        return conn

    async def _start_session(self, conn: BridgeConnection) -> None:
        conn.session.on_message(self._inbound_handler(conn))
        try:
            await conn.session.start()
        except Exception as e:
            raise ExternalPlatformError(f"Failed to start Telegram bot: {e}") from e

    async def _teardown(self, conn: BridgeConnection) -> None:
        """Stop the session, then release the registry slot."""
        await self._close_session(conn.session, user_id=conn.user_id)
        self._registry.remove(conn)

    @staticmethod
    async def _close_session(session: PlatformSession, user_id: str) -> None:
        try:
            await session.stop()
        except Exception as e:
            logger.error("bridge_stop_error", user_id=user_id, error=str(e))

    def _inbound_handler(self, conn: BridgeConnection):
        async def _handle(message: IncomingMessage) -> None:
            if self._registry.get(conn.user_id) is not conn:
                logger.debug("inbound_from_stale_bridge", user_id=conn.user_id)
                return
            if self._inbound_sink is None:
                logger.warning("inbound_without_sink", user_id=conn.user_id)
                return
            try:
                await self._inbound_sink(message.chat_id, message.text, conn.channel_id)
            except Exception as e:
                logger.error(
                    "inbound_routing_failed",
                    user_id=conn.user_id,
                    chat_id=message.chat_id,
                    error=str(e),
                )

        return _handle
