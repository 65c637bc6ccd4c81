"""
Token issuer - Signed, time-bounded session tokens.

Tokens are HS256 JWTs carrying the account id as ``sub``. Validation is
stateless: signature, structure and expiry only. There is no revocation
store; logging out means the client discards the token.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from .exceptions import InvalidToken


@dataclass
class TokenIssuer:
    """Mints and validates session tokens for verified logins."""

    secret: str
    algorithm: str = "HS256"
    ttl_seconds: int = 86400

    def issue(self, account_id: int, now: datetime | None = None) -> str:
        """
        Create a signed token for ``account_id``.

        Args:
            account_id: Id of the authenticated account
            now: Issuance time; defaults to the current UTC time

        Returns:
            Encoded JWT
        """
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "sub": str(account_id),
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.ttl_seconds),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def validate(self, token: str) -> int:
        """
        Return the account id bound to ``token``.

        Raises:
            InvalidToken: On bad signature, malformed token, missing or
                non-numeric subject, or expiry
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidToken("Token has expired") from None
        except jwt.InvalidTokenError:
            raise InvalidToken() from None

        try:
            return int(payload["sub"])
        except (TypeError, ValueError):
            raise InvalidToken() from None
