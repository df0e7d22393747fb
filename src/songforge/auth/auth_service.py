"""Bearer token validation for end users.

Tokens are minted by the identity service with the user id in ``sub``;
SongForge only verifies them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
import structlog

logger = structlog.get_logger(__name__)


class AuthError(Exception):
    """Caller could not be identified."""


class InvalidTokenError(AuthError):
    """Signature, algorithm or required claims do not check out."""


class TokenExpiredError(AuthError):
    """The ``exp`` claim is in the past."""


@dataclass(slots=True)
class TokenVerifier:
    """Decode HS256 tokens issued by the identity service."""

    signing_key: str
    algorithm: str = "HS256"

    @classmethod
    def from_key(cls, signing_key: str) -> "TokenVerifier":
        if not signing_key:
            raise RuntimeError("JWT_SIGNING_KEY must be set to verify bearer tokens")
        return cls(signing_key=signing_key)

    def issue_token(self, user_id: str, *, ttl: timedelta = timedelta(hours=1)) -> str:
        """Mint a token for ``user_id`` (used by scripts and tests)."""
        issued_at = datetime.now(tz=timezone.utc)
        payload: dict[str, Any] = {
            "sub": user_id,
            "iat": issued_at,
            "exp": issued_at + ttl,
        }
        return jwt.encode(payload, self.signing_key, algorithm=self.algorithm)

    def validate_token(self, token: str) -> dict[str, Any]:
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self.signing_key,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            logger.info("auth.token.expired")
            raise TokenExpiredError("Bearer token has expired") from exc
        except jwt.InvalidTokenError as exc:
            logger.warning("auth.token.invalid", error=str(exc))
            raise InvalidTokenError("Bearer token is not valid") from exc
        if not str(payload.get("sub") or "").strip():
            raise InvalidTokenError("Token subject is empty")
        return payload

    def user_id_for(self, token: str) -> str:
        return str(self.validate_token(token)["sub"])
