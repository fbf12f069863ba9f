"""Abstract bot platform session interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from chatbridge.messenger.models import BotIdentity, IncomingMessage

MessageCallback = Callable[[IncomingMessage], Awaitable[None]]


class PlatformSession(ABC):
    """One bot account's connection to its platform.

    The lifecycle is ``identify()`` (handshake, no inbound delivery yet),
    ``start()`` (begin receiving) and ``stop()``. ``stop()`` must be safe to
    call in any state, including after a failed ``identify()``.
    """

    def __init__(self, credential: str):
        self.credential = credential
        self._message_callback: MessageCallback | None = None

    @abstractmethod
    async def identify(self) -> BotIdentity:
        """Validate the credential and return the bot's identity."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Begin receiving inbound messages."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Release the session. Idempotent."""
        ...

    @abstractmethod
    async def send_text(self, chat_id: str, text: str) -> None:
        ...

    def on_message(self, callback: MessageCallback) -> None:
        """Register the callback invoked for every incoming message."""
        self._message_callback = callback

    @property
    @abstractmethod
    def platform_name(self) -> str:
        ...


SessionFactory = Callable[[str], PlatformSession]
