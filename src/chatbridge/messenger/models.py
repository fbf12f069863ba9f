"""Message and identity models exchanged with the bot platform."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from chatbridge.core.types import Platform


@dataclass(frozen=True, slots=True)
class BotIdentity:
    """Profile returned by the platform handshake."""

    id: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "firstName": self.first_name,
            "lastName": self.last_name,
        }


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    platform: Platform
    chat_id: str
    text: str
    timestamp: datetime
    user_id: Optional[str] = None
    user_display_name: Optional[str] = None
