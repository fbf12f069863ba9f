"""Shared-secret JWT verification for client connections."""

from __future__ import annotations

from typing import Optional

import jwt

from chatbridge.core.errors import AuthRejected


class TokenVerifier:
    """Verifies HS256 tokens whose ``sub`` claim is the user id."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self._algorithm = algorithm

    def verify(self, token: Optional[str]) -> str:
        """Return the user id carried by ``token`` or raise AuthRejected."""
        if not token:
            raise AuthRejected("Missing token")
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub"]},
            )
        except jwt.PyJWTError as e:
            raise AuthRejected(f"Invalid token: {e}") from e

        user_id = str(claims.get("sub") or "")
        if not user_id:
            raise AuthRejected("Token has no subject")
        return user_id
