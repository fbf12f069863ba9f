"""Typed failures surfaced by the bridge manager, relay and stores.

Every error carries a stable ``code`` that clients can branch on and the HTTP
status the administrative API answers with.
"""

from __future__ import annotations


class RelayError(Exception):
    code = "relay_error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class AlreadyConnected(RelayError):
    """The bot account is already linked and active for this user."""

    code = "already_connected"
    status_code = 409


class AlreadyRunning(RelayError):
    """A bridge is already registered for this user."""

    code = "already_running"
    status_code = 409


class NotRunning(RelayError):
    code = "not_running"
    status_code = 409


class NotFound(RelayError):
    code = "not_found"
    status_code = 404


class NoActiveChannel(RelayError):
    code = "no_active_channel"
    status_code = 404


class AuthRejected(RelayError):
    code = "auth_rejected"
    status_code = 401


class ExternalPlatformError(RelayError):
    """Wraps any failure raised by the bot platform client."""

    code = "external_platform_error"
    status_code = 502


class StoreError(RelayError):
    """Wraps any persistence failure."""

    code = "store_error"
    status_code = 500
