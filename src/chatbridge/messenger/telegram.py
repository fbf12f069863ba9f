"""Telegram bot session using python-telegram-bot v21+."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from telegram import Update
from telegram.ext import Application, MessageHandler as TGMessageHandler, filters

from chatbridge.core.types import Platform
from chatbridge.log import get_logger
from chatbridge.messenger.base import PlatformSession
from chatbridge.messenger.models import BotIdentity, IncomingMessage

logger = get_logger(__name__)


class TelegramSession(PlatformSession):
    """Long-polling Telegram bot bound to one bot token."""

    def __init__(self, credential: str, drop_pending_updates: bool = True):
        super().__init__(credential)
        self._drop_pending_updates = drop_pending_updates
        self._app: Application | None = None  # type: ignore[type-arg]
        self._identity: BotIdentity | None = None

    @property
    def platform_name(self) -> str:
        return Platform.TELEGRAM

    async def identify(self) -> BotIdentity:
        if self._identity is not None:
            return self._identity

        if self._app is None:
            self._app = Application.builder().token(self.credential).build()
            self._app.add_handler(TGMessageHandler(filters.TEXT, self._on_telegram_message))

        # initialize() performs getMe, which rejects revoked or malformed tokens
        await self._app.initialize()
        me = self._app.bot.bot
        self._identity = BotIdentity(
            id=str(me.id),
            username=me.username,
            first_name=me.first_name,
            last_name=me.last_name,
        )
        logger.info("telegram_identified", bot_id=self._identity.id, username=me.username)
        return self._identity

    async def start(self) -> None:
        identity = await self.identify()
        if self._app is None:
            raise RuntimeError("Telegram session is not open")
        await self._app.start()
        await self._app.updater.start_polling(  # type: ignore[union-attr]
            drop_pending_updates=self._drop_pending_updates
        )
        logger.info("telegram_session_started", bot_id=identity.id)

    async def stop(self) -> None:
        if self._app is None:
            return
        app = self._app
        if app.updater and app.updater.running:
            await app.updater.stop()
        if app.running:
            await app.stop()
        await app.shutdown()
        self._app = None
        self._identity = None
        logger.info("telegram_session_stopped")

    async def send_text(self, chat_id: str, text: str) -> None:
        if self._app is None:
            raise RuntimeError("Telegram session is not open")
        await self._app.bot.send_message(chat_id=chat_id, text=text)

    async def _on_telegram_message(self, update: Update, context: Any) -> None:
        if not update.message or not self._message_callback:
            return

        msg = update.message
        if not msg.text:
            return

        incoming = IncomingMessage(
            platform=Platform.TELEGRAM,
            chat_id=str(msg.chat_id),
            text=msg.text,
            timestamp=msg.date or datetime.now(timezone.utc),
            user_id=str(msg.from_user.id) if msg.from_user else None,
            user_display_name=msg.from_user.full_name if msg.from_user else None,
        )

        try:
            await self._message_callback(incoming)
        except Exception as e:
            logger.error("telegram_handler_error", error=str(e), chat_id=str(msg.chat_id))
