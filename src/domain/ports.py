"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .models import Account


class OtpPurpose(str, Enum):
    """
    Flow context a verification code is scoped to.

    A code issued for one purpose never verifies for another, so a
    registration code cannot be replayed to complete a login.
    """

    REGISTRATION = "REGISTRATION"
    LOGIN = "LOGIN"
    PASSWORD_RESET = "PASSWORD_RESET"


class VerifyResult(Enum):
    """
    Result of a verification attempt against the OTP ledger.

    Checks are applied in declaration order after SUCCESS:
    NOT_FOUND, EXPIRED, ALREADY_CONSUMED, TOO_MANY_ATTEMPTS, MISMATCH.
    """

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_CONSUMED = "already_consumed"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    MISMATCH = "mismatch"


class ClaimResult(Enum):
    """Outcome of claiming an account row for registration."""

    CREATED = "created"
    RESTARTED = "restarted"  # Unverified account reused with new credentials
    EMAIL_ACTIVE = "email_active"
    USERNAME_TAKEN = "username_taken"


class AccountRepository(Protocol):
    """Port interface for the credential store."""

    def claim_account(self, username: str, email: str, password_hash: str) -> ClaimResult:
        """
        Atomically insert an unverified, disabled account or restart one.

        An existing unverified account for ``email`` is overwritten with the
        new username and password hash. A verified account is never touched.

        Args:
            username: Desired unique username
            email: Normalized email address
            password_hash: bcrypt hashed password

        Returns:
            ClaimResult describing what happened
        """
        ...

    def get_by_email(self, email: str) -> Account | None: ...

    def get_by_id(self, account_id: int) -> Account | None: ...

    def mark_verified(self, email: str) -> bool:
        """Set email_verified and enabled; False if no such account."""
        ...

    def update_password(self, email: str, password_hash: str) -> bool:
        """Overwrite the password hash; False if no such account."""
        ...


class OtpRepository(Protocol):
    """
    Port interface for OTP ledger persistence.

    Implementations must serialize ``issue`` and ``verify`` per
    (email, purpose) key, so the later ``issue`` always wins and a code is
    consumed at most once. Unrelated keys must not contend.
    """

    def issue(
        self,
        email: str,
        purpose: OtpPurpose,
        code: str,
        ttl_seconds: int,
        issue_limit: int,
        window_seconds: int,
    ) -> bool:
        """
        Overwrite the entry for (email, purpose) with a fresh code.

        The rate-limit counter is checked and bumped in the same atomic step:
        at most ``issue_limit`` issuances per ``window_seconds``.

        Returns:
            True if the code was stored, False if rate limited
        """
        ...

    def verify(
        self, email: str, purpose: OtpPurpose, code: str, max_attempts: int
    ) -> VerifyResult:
        """
        Check ``code`` against the entry and apply the resulting mutation.

        MISMATCH increments the attempt counter; SUCCESS marks the entry
        consumed. Both happen under the per-key serialization point.
        """
        ...

    def purge_expired(self, window_seconds: int) -> int:
        """Delete entries whose expiry and rate window both elapsed."""
        ...


class PendingLoginRepository(Protocol):
    """Port interface for password-verified logins awaiting an OTP."""

    def create(self, email: str, account_id: int, ttl_seconds: int) -> None:
        """Create or replace the pending login for ``email``."""
        ...

    def exists(self, email: str) -> bool:
        """True if an unexpired pending login exists for ``email``."""
        ...

    def refresh(self, email: str, ttl_seconds: int) -> bool:
        """Push a live pending login's expiry to now + ``ttl_seconds``; False if none."""
        ...

    def take(self, email: str) -> int | None:
        """Atomically remove a live pending login, returning its account id."""
        ...

    def purge_expired(self) -> int: ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> None:
        """
        Send a verification code to an email address.

        Args:
            email: Recipient email address
            code: 6-digit verification code
            purpose: Flow the code belongs to (shown to the recipient)

        Raises:
            DispatchFailed: If the message could not be handed to the transport
        """
        ...
