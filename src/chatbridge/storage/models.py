"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from chatbridge.core.types import Platform, SenderType


@dataclass
class MessageRecord:
    chat_id: str
    sender_id: str
    sender_type: SenderType
    content: str
    is_read: bool
    timestamp: datetime
    id: Optional[int] = None


@dataclass
class ChannelRecord:
    user_id: str
    channel_id: str
    platform: Platform = Platform.TELEGRAM
    credential: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool = True
    last_sync: Optional[datetime] = None
