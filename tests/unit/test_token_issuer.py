"""Unit tests for TokenIssuer."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from src.domain.exceptions import InvalidToken
from src.domain.tokens import TokenIssuer
from tests.helpers import TEST_JWT_SECRET


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(secret=TEST_JWT_SECRET)


class TestIssue:
    def test_round_trip_returns_account_id(self, issuer: TokenIssuer) -> None:
        token = issuer.issue(42)
        assert issuer.validate(token) == 42

    def test_claims_carry_subject_and_lifetime(self, issuer: TokenIssuer) -> None:
        now = datetime.now(timezone.utc).replace(microsecond=0)

        token = issuer.issue(42, now=now)

        payload = jwt.decode(token, TEST_JWT_SECRET, algorithms=["HS256"])
        assert payload["sub"] == "42"
        assert payload["iat"] == int(now.timestamp())
        assert payload["exp"] - payload["iat"] == 86400


class TestValidate:
    def test_expired_token_rejected(self, issuer: TokenIssuer) -> None:
        token = issuer.issue(42, now=datetime.now(timezone.utc) - timedelta(days=2))

        with pytest.raises(InvalidToken, match="expired"):
            issuer.validate(token)

    def test_foreign_signature_rejected(self, issuer: TokenIssuer) -> None:
        other = TokenIssuer(secret="another-secret-key-with-at-least-32-bytes")
        token = other.issue(42)

        with pytest.raises(InvalidToken):
            issuer.validate(token)

    @pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c"])
    def test_malformed_token_rejected(self, issuer: TokenIssuer, token: str) -> None:
        with pytest.raises(InvalidToken):
            issuer.validate(token)

    def test_non_numeric_subject_rejected(self, issuer: TokenIssuer) -> None:
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "alice", "iat": now, "exp": now + timedelta(hours=1)},
            TEST_JWT_SECRET,
            algorithm="HS256",
        )

        with pytest.raises(InvalidToken):
            issuer.validate(token)

    def test_missing_expiry_rejected(self, issuer: TokenIssuer) -> None:
        token = jwt.encode(
            {"sub": "42", "iat": datetime.now(timezone.utc)}, TEST_JWT_SECRET, algorithm="HS256"
        )

        with pytest.raises(InvalidToken):
            issuer.validate(token)

    def test_unsigned_token_rejected(self, issuer: TokenIssuer) -> None:
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "42", "iat": now, "exp": now + timedelta(hours=1)}, None, algorithm="none"
        )

        with pytest.raises(InvalidToken):
            issuer.validate(token)
