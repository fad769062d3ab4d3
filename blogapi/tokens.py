"""
Bearer token issuance and verification.

Tokens are HS256 JWTs that carry nothing but the user id and an expiry.
Role and active status are always re-read from the database by the
authentication gate, so a token never vouches for more than identity.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt  # PyJWT


class InvalidToken(Exception):
    """The token is malformed, has a bad signature, or has expired."""


@dataclass(frozen=True)
class TokenConfig:
    secret: str
    algorithm: str = "HS256"
    expires_in: timedelta = timedelta(days=30)

    @classmethod
    def from_settings(cls, settings) -> "TokenConfig":
        return cls(
            secret=settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
            expires_in=timedelta(days=settings.JWT_EXPIRE_DAYS),
        )


class TokenService:
    def __init__(self, config: TokenConfig) -> None:
        self._config = config

    @property
    def config(self) -> TokenConfig:
        return self._config

    def issue(self, identity_id: int, now: datetime | None = None) -> str:
        """Return a signed token for *identity_id* expiring after ``expires_in``."""
        issued = now or datetime.now(timezone.utc)
        payload = {"id": identity_id, "exp": issued + self._config.expires_in}
        return jwt.encode(payload, self._config.secret, algorithm=self._config.algorithm)

    def verify(self, token: str) -> int:
        """
        Return the identity id embedded in *token*.

        Signature and expiry are checked independently by PyJWT; either
        failing raises ``InvalidToken``.
        """
        try:
            payload = jwt.decode(
                token,
                self._config.secret,
                algorithms=[self._config.algorithm],
                options={"require": ["exp", "id"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidToken("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidToken("Invalid token") from exc

        identity_id = payload["id"]
        if isinstance(identity_id, bool) or not isinstance(identity_id, int):
            raise InvalidToken("Invalid token subject")
        return identity_id
