"""Relay broadcaster: authenticated client sessions and message fan-out.

Messages are always appended to the store before any ``newMessage`` event is
emitted for them. Every new message is broadcast to all connected sessions,
not only to participants of its chat.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from chatbridge.core.bridge_manager import BridgeManager
from chatbridge.core.errors import AuthRejected, RelayError, StoreError
from chatbridge.core.types import SenderType
from chatbridge.log import get_logger
from chatbridge.relay import protocol
from chatbridge.relay.auth import TokenVerifier
from chatbridge.storage.message_repo import DEFAULT_HISTORY_LIMIT, MessageStore
from chatbridge.storage.models import MessageRecord

logger = get_logger(__name__)

SEND_FAILED_MESSAGE = "Failed to send message"


class ClientTransport(ABC):
    """A real-time connection to one client."""

    @abstractmethod
    async def emit(self, event: str, data: Any) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


@dataclass(eq=False)
class ClientSession:
    user_id: str
    transport: ClientTransport


class RelayBroadcaster:
    """Tracks connected clients by user id and fans out new messages."""

    def __init__(
        self,
        store: MessageStore,
        bridges: BridgeManager,
        verifier: TokenVerifier,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self._store = store
        self._bridges = bridges
        self._verifier = verifier
        self._history_limit = history_limit
        self._sessions: dict[str, ClientSession] = {}

    def sessions(self) -> list[ClientSession]:
        return list(self._sessions.values())

    def get_session(self, user_id: str) -> ClientSession | None:
        return self._sessions.get(user_id)

    async def on_client_connect(
        self, transport: ClientTransport, token: Optional[str]
    ) -> ClientSession | None:
        """Authenticate and replay unread messages and history.

        Returns None, after closing the transport, when the token is rejected.
        """
        try:
            user_id = self._verifier.verify(token)
        except AuthRejected as e:
            logger.info("client_auth_rejected", reason=str(e))
            await transport.close()
            return None

        session = ClientSession(user_id=user_id, transport=transport)
        # a second connection for the same user replaces the lookup entry only
        self._sessions[user_id] = session
        logger.info("client_connected", user_id=user_id, sessions=len(self._sessions))

        try:
            unread = await self._store.unread(user_id)
            if unread:
                await transport.emit(protocol.UNREAD_MESSAGES, protocol.dump_messages(unread))
                await self._store.mark_read(user_id)

            history = await self._store.history(user_id, self._history_limit)
            await transport.emit(protocol.CHAT_HISTORY, protocol.dump_messages(history))
        except Exception as e:
            # store or transport failure: the client never finished joining
            logger.error("client_replay_failed", user_id=user_id, error=str(e))
            self._unregister(session)
            try:
                await transport.close()
            except Exception as close_error:
                logger.warning("client_close_error", user_id=user_id, error=str(close_error))
            return None

        return session

    def on_client_disconnect(self, transport: ClientTransport) -> None:
        for session in list(self._sessions.values()):
            if session.transport is transport:
                self._unregister(session)
                logger.info("client_disconnected", user_id=session.user_id)
                break

    async def on_client_message(self, session: ClientSession, chat_id: str, content: str) -> None:
        """Persist, forward to the bot platform, then echo to every client."""
        try:
            record = await self._store.append(chat_id, session.user_id, SenderType.USER, content)
        except StoreError:
            await self._emit_error(session, SEND_FAILED_MESSAGE)
            return

        forward_error: RelayError | None = None
        try:
            await self._bridges.send_outbound(session.user_id, chat_id, content)
        except RelayError as e:
            forward_error = e
            logger.warning(
                "outbound_forward_failed",
                user_id=session.user_id,
                chat_id=chat_id,
                code=e.code,
                error=str(e),
            )

        await self._broadcast_new(record)

        if forward_error is not None:
            await self._emit_error(session, SEND_FAILED_MESSAGE)

    async def route_inbound(self, chat_id: str, content: str, channel_id: str) -> None:
        """Persist a message received by a bot, then broadcast it."""
        try:
            record = await self._store.append(chat_id, channel_id, SenderType.BOT, content)
        except StoreError as e:
            logger.error(
                "inbound_persist_failed", chat_id=chat_id, channel_id=channel_id, error=str(e)
            )
            return
        await self._broadcast_new(record)

    async def shutdown(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            try:
                await session.transport.close()
            except Exception as e:
                logger.warning("client_close_error", user_id=session.user_id, error=str(e))
        logger.info("relay_shutdown", closed=len(sessions))

    async def _broadcast_new(self, record: MessageRecord) -> None:
        payload = protocol.dump(protocol.NewMessageEvent.from_record(record))
        sessions = list(self._sessions.values())
        results = await asyncio.gather(
            *(s.transport.emit(protocol.NEW_MESSAGE, payload) for s in sessions),
            return_exceptions=True,
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.warning("broadcast_failed", user_id=session.user_id, error=str(result))

    async def _emit_error(self, session: ClientSession, message: str) -> None:
        try:
            await session.transport.emit(protocol.ERROR, {"message": message})
        except Exception as e:
            logger.warning("client_error_emit_failed", user_id=session.user_id, error=str(e))

    def _unregister(self, session: ClientSession) -> None:
        if self._sessions.get(session.user_id) is session:
            del self._sessions[session.user_id]
