from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import jwt
import pytest
import pytest_asyncio

from chatbridge.core.bridge_manager import BridgeManager
from chatbridge.core.types import Platform
from chatbridge.messenger.base import PlatformSession
from chatbridge.messenger.models import BotIdentity, IncomingMessage
from chatbridge.relay.auth import TokenVerifier
from chatbridge.relay.broadcaster import ClientTransport, RelayBroadcaster
from chatbridge.storage.channel_repo import ChannelRepository
from chatbridge.storage.database import Database
from chatbridge.storage.message_repo import MessageStore

JWT_SECRET = "test-secret"


def issue_token(
    user_id: str, secret: str = JWT_SECRET, ttl: timedelta = timedelta(days=1), **claims
) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + ttl, **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


class FakeSession(PlatformSession):
    def __init__(self, platform: FakePlatform, credential: str):
        super().__init__(credential)
        self._platform = platform
        self.started = False
        self.stopped = False

    @property
    def platform_name(self) -> str:
        return Platform.TELEGRAM

    async def identify(self) -> BotIdentity:
        await asyncio.sleep(0)
        identity = self._platform.bots.get(self.credential)
        if identity is None:
            raise RuntimeError("Unauthorized")
        return identity

    async def start(self) -> None:
        await self.identify()
        await asyncio.sleep(0)
        self.started = True

    async def stop(self) -> None:
        if self._platform.on_stop:
            self._platform.on_stop(self)
        self.started = False
        self.stopped = True

    async def send_text(self, chat_id: str, text: str) -> None:
        if self._platform.fail_send:
            raise RuntimeError("Bad Request: chat not found")
        self._platform.sent.append((self.credential, chat_id, text))

    async def deliver(self, chat_id: str, text: str) -> None:
        """Simulate the platform pushing an inbound message."""
        assert self._message_callback is not None
        await self._message_callback(
            IncomingMessage(
                platform=Platform.TELEGRAM,
                chat_id=chat_id,
                text=text,
                timestamp=datetime.now(timezone.utc),
            )
        )


class FakePlatform:
    """In-memory bot platform: known tokens, created sessions and sent texts."""

    def __init__(self) -> None:
        self.bots: dict[str, BotIdentity] = {}
        self.sessions: list[FakeSession] = []
        self.sent: list[tuple[str, str, str]] = []
        self.fail_send = False
        self.on_stop: Callable[[FakeSession], None] | None = None

    def add_bot(self, token: str, bot_id: str, username: str | None = None) -> BotIdentity:
        identity = BotIdentity(id=bot_id, username=username or f"bot{bot_id}", first_name="Bot")
        self.bots[token] = identity
        return identity

    def revoke(self, token: str) -> None:
        self.bots.pop(token, None)

    def factory(self, credential: str) -> FakeSession:
        session = FakeSession(self, credential)
        self.sessions.append(session)
        return session

    def live_sessions(self) -> list[FakeSession]:
        return [s for s in self.sessions if s.started and not s.stopped]


class FakeTransport(ClientTransport):
    def __init__(self, on_emit: Callable[[str, Any], Any] | None = None):
        self.events: list[tuple[str, Any]] = []
        self.closed = False
        self._on_emit = on_emit

    async def emit(self, event: str, data: Any) -> None:
        if self._on_emit is not None:
            await self._on_emit(event, data)
        self.events.append((event, data))

    async def close(self) -> None:
        self.closed = True

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, event: str) -> list[Any]:
        return [data for name, data in self.events if name == event]


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "chatbridge.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def store(db) -> MessageStore:
    return MessageStore(db)


@pytest.fixture
def channels(db) -> ChannelRepository:
    return ChannelRepository(db)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def manager(channels, platform) -> BridgeManager:
    return BridgeManager(channels, platform.factory)


@pytest.fixture
def verifier() -> TokenVerifier:
    return TokenVerifier(JWT_SECRET)


@pytest.fixture
def broadcaster(store, manager, verifier) -> RelayBroadcaster:
    relay = RelayBroadcaster(store, manager, verifier, history_limit=50)
    manager.on_inbound(relay.route_inbound)
    return relay
