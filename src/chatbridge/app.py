"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from functools import partial
from typing import Optional

from chatbridge.config import AppConfig
from chatbridge.core.bridge_manager import BridgeManager
from chatbridge.log import get_logger
from chatbridge.messenger.base import SessionFactory
from chatbridge.relay.auth import TokenVerifier
from chatbridge.relay.broadcaster import RelayBroadcaster
from chatbridge.storage.channel_repo import ChannelRepository
from chatbridge.storage.database import Database
from chatbridge.storage.message_repo import MessageStore

logger = get_logger(__name__)


def _telegram_factory(config: AppConfig) -> SessionFactory:
    from chatbridge.messenger.telegram import TelegramSession

    return partial(TelegramSession, drop_pending_updates=config.telegram.drop_pending_updates)


class RelayApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig, session_factory: Optional[SessionFactory] = None):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.message_store = MessageStore(self.db)
        self.channel_repo = ChannelRepository(self.db)
        self.bridge_manager = BridgeManager(
            self.channel_repo, session_factory or _telegram_factory(config)
        )
        self.verifier = TokenVerifier(config.auth.jwt_secret, config.auth.algorithm)
        self.broadcaster = RelayBroadcaster(
            self.message_store,
            self.bridge_manager,
            self.verifier,
            history_limit=config.relay.history_limit,
        )
        self.bridge_manager.on_inbound(self.broadcaster.route_inbound)

    async def start(self) -> None:
        """Open storage and restore every previously active bridge."""
        await self.db.initialize()
        restored = await self.bridge_manager.restore_all()
        logger.info("chatbridge_started", bridges=restored)

    async def stop(self) -> None:
        """Stop bridges first so no inbound message arrives after clients are gone."""
        await self.bridge_manager.stop_all()
        await self.broadcaster.shutdown()
        await self.db.close()
        logger.info("chatbridge_stopped")
