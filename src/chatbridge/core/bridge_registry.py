"""Registry of live bridge connections, at most one per user."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chatbridge.messenger.base import PlatformSession


@dataclass(eq=False)
class BridgeConnection:
    user_id: str
    channel_id: str
    session: PlatformSession


class BridgeRegistry:
    """Tracks the bridge owned by each user.

    All methods are synchronous, so each check-and-insert or
    check-and-remove runs without yielding to the event loop.
    """

    def __init__(self) -> None:
        self._bridges: dict[str, BridgeConnection] = {}

    def try_register(self, conn: BridgeConnection) -> bool:
        """Claim the user's slot. Returns False if it is already taken."""
        if conn.user_id in self._bridges:
            return False
        self._bridges[conn.user_id] = conn
        return True

    def remove(self, conn: BridgeConnection) -> bool:
        """Drop ``conn`` if it is still the registered bridge for its user."""
        if self._bridges.get(conn.user_id) is not conn:
            return False
        del self._bridges[conn.user_id]
        return True

    def get(self, user_id: str) -> BridgeConnection | None:
        return self._bridges.get(user_id)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._bridges

    def __len__(self) -> int:
        return len(self._bridges)

    def all(self) -> list[BridgeConnection]:
        return list(self._bridges.values())

    def ids(self) -> list[str]:
        return list(self._bridges.keys())
