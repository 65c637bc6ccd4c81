"""
Authentication domain service - OTP-gated flow state machine.

This module contains the core business logic for registration, login and
password recovery. Every flow is a short forward-only sequence whose
server-side state lives in the account row, the OTP ledger and the
pending-login store.

Flows
=====

Registration:
    register            -> REQUESTED (account unverified + disabled, code sent)
    verify_registration -> ACTIVE    (email_verified + enabled)

Login:
    login               -> AWAITING_OTP  (password checked, pending login kept)
    verify_login        -> AUTHENTICATED (pending login destroyed, token issued)

Password reset:
    forgot_password     -> AWAITING_RESET (code sent if the account exists)
    reset_password      -> DONE           (password hash replaced)

Failures are raised as AuthError subclasses. Precondition checks run
before any ledger mutation, so a failed password check never issues a code.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache

import bcrypt

from .exceptions import (
    AccountDisabled,
    AlreadyRegistered,
    DispatchFailed,
    EmailNotVerified,
    InvalidCredentials,
    InvalidToken,
    NoPendingLogin,
    OtpNotFound,
    OtpRateLimited,
    PasswordTooLong,
    UsernameTaken,
)
from .models import Account, LoginResult
from .otp import OtpLedger
from .ports import (
    AccountRepository,
    ClaimResult,
    EmailSender,
    OtpPurpose,
    PendingLoginRepository,
)
from .tokens import TokenIssuer

logger = logging.getLogger(__name__)

# bcrypt rejects longer input
MAX_PASSWORD_BYTES = 72


@lru_cache
def _dummy_hash(cost: int) -> bytes:
    """
    Hash compared against when the email is unknown.

    Uses the configured cost so login timing does not reveal whether an
    account exists.
    """
    return bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(rounds=cost))


@dataclass
class AuthService:
    """
    Domain service orchestrating the OTP-gated authentication flows.

    Talks to the credential store, OTP ledger, pending-login store and
    email sender through their ports, and hands verified logins to the
    token issuer.
    """

    accounts: AccountRepository
    otp_ledger: OtpLedger
    pending_logins: PendingLoginRepository
    email_sender: EmailSender
    token_issuer: TokenIssuer
    bcrypt_cost: int = 12
    pending_login_ttl_seconds: int = 300

    # Registration

    def register(self, username: str, email: str, password: str) -> str:
        """
        Claim an account for ``email`` and send a registration code.

        Re-registering an email that is still unverified restarts the flow
        with the new username and password.

        Returns:
            Normalized email address

        Raises:
            PasswordTooLong: If the password exceeds bcrypt's limit
            AlreadyRegistered: If the email belongs to a verified account
            UsernameTaken: If another account owns the username
            OtpRateLimited: If too many codes were requested recently
            DispatchFailed: If the code could not be sent
        """
        normalized_email = self._normalize_email(email)
        password_hash = self._hash_password(password)

        claim = self.accounts.claim_account(username.strip(), normalized_email, password_hash)
        if claim is ClaimResult.EMAIL_ACTIVE:
            raise AlreadyRegistered()
        if claim is ClaimResult.USERNAME_TAKEN:
            raise UsernameTaken()

        logger.info("Registration %s for %s", claim.value, normalized_email)
        self._issue_and_send(normalized_email, OtpPurpose.REGISTRATION)
        return normalized_email

    def verify_registration(self, email: str, code: str) -> None:
        """
        Consume the registration code and activate the account.

        Raises:
            OtpError: If the code does not verify
        """
        normalized_email = self._normalize_email(email)
        self.otp_ledger.consume(normalized_email, OtpPurpose.REGISTRATION, code)

        if not self.accounts.mark_verified(normalized_email):
            # Accounts are never deleted, so this means the store is inconsistent
            logger.error("Registration code consumed for unknown account %s", normalized_email)
            raise OtpNotFound()
        logger.info("Email verified for %s", normalized_email)

    # Login

    def login(self, email: str, password: str) -> None:
        """
        Check credentials and send a login code.

        Raises:
            InvalidCredentials: Unknown email or wrong password
            EmailNotVerified: Registration was never completed
            AccountDisabled: Account is not enabled
            OtpRateLimited: If too many codes were requested recently
            DispatchFailed: If the code could not be sent
        """
        normalized_email = self._normalize_email(email)
        account = self.accounts.get_by_email(normalized_email)

        # bcrypt always runs, against a dummy hash for unknown emails
        stored_hash = (
            account.password_hash.encode() if account else _dummy_hash(self.bcrypt_cost)
        )
        # Over-long passwords can never match, but still pay for the hash
        secret = password.encode()
        password_valid = bcrypt.checkpw(secret[:MAX_PASSWORD_BYTES], stored_hash)
        if len(secret) > MAX_PASSWORD_BYTES:
            password_valid = False

        if account is None or not password_valid:
            logger.warning("Login rejected for %s: invalid credentials", normalized_email)
            raise InvalidCredentials()
        if not account.email_verified:
            raise EmailNotVerified()
        if not account.enabled:
            raise AccountDisabled()

        code = self.otp_ledger.issue(normalized_email, OtpPurpose.LOGIN)
        self.pending_logins.create(normalized_email, account.id, self.pending_login_ttl_seconds)
        self._send(normalized_email, code, OtpPurpose.LOGIN)

    def verify_login(self, email: str, code: str) -> LoginResult:
        """
        Consume the login code and issue a session token.

        Raises:
            NoPendingLogin: If no password-verified login is waiting
            OtpError: If the code does not verify
        """
        normalized_email = self._normalize_email(email)
        if not self.pending_logins.exists(normalized_email):
            raise NoPendingLogin()

        self.otp_ledger.consume(normalized_email, OtpPurpose.LOGIN, code)

        account_id = self.pending_logins.take(normalized_email)
        if account_id is None:
            raise NoPendingLogin()
        account = self.accounts.get_by_id(account_id)
        if account is None:
            raise NoPendingLogin()

        token = self.token_issuer.issue(account.id)
        logger.info("Login completed for %s", normalized_email)
        return LoginResult(token=token, account=account)

    # Password reset

    def forgot_password(self, email: str) -> None:
        """
        Send a password reset code if the account exists.

        Never reveals whether the account exists: unknown emails, rate
        limiting and delivery failures all look like success to the caller.
        """
        normalized_email = self._normalize_email(email)
        if self.accounts.get_by_email(normalized_email) is None:
            logger.info("Password reset requested for unknown email %s", normalized_email)
            return

        try:
            self._issue_and_send(normalized_email, OtpPurpose.PASSWORD_RESET)
        except (OtpRateLimited, DispatchFailed) as e:
            logger.warning("Password reset code not delivered to %s: %s", normalized_email, e)

    def reset_password(self, email: str, code: str, new_password: str) -> None:
        """
        Consume the reset code and replace the password hash.

        Raises:
            PasswordTooLong: If the new password exceeds bcrypt's limit
            OtpError: If the code does not verify
        """
        normalized_email = self._normalize_email(email)
        # Hash first so a rejected password leaves the code usable
        password_hash = self._hash_password(new_password)
        self.otp_ledger.consume(normalized_email, OtpPurpose.PASSWORD_RESET, code)

        if not self.accounts.update_password(normalized_email, password_hash):
            logger.error("Reset code consumed for unknown account %s", normalized_email)
            raise OtpNotFound()
        logger.info("Password reset for %s", normalized_email)

    # Resend

    def resend_otp(self, email: str, purpose: OtpPurpose) -> None:
        """
        Issue a fresh code for a flow that is already in progress.

        Goes through the same rate-limited issuance as the original step.

        Raises:
            OtpNotFound: REGISTRATION without an unverified account
            NoPendingLogin: LOGIN without a live pending login
        """
        normalized_email = self._normalize_email(email)

        if purpose is OtpPurpose.PASSWORD_RESET:
            self.forgot_password(normalized_email)
            return

        if purpose is OtpPurpose.LOGIN:
            # The fresh code must not outlive the login it belongs to
            ttl = self.pending_login_ttl_seconds
            if not self.pending_logins.refresh(normalized_email, ttl):
                raise NoPendingLogin()
        else:
            account = self.accounts.get_by_email(normalized_email)
            if account is None or account.email_verified:
                raise OtpNotFound("No pending registration for this email")

        self._issue_and_send(normalized_email, purpose)

    # Session

    def current_user(self, token: str) -> Account:
        """
        Resolve a bearer token to its account.

        Raises:
            InvalidToken: If the token is invalid or its account is gone
        """
        account = self.accounts.get_by_id(self.token_issuer.validate(token))
        if account is None:
            raise InvalidToken()
        return account

    def _issue_and_send(self, email: str, purpose: OtpPurpose) -> None:
        code = self.otp_ledger.issue(email, purpose)
        self._send(email, code, purpose)

    def _send(self, email: str, code: str, purpose: OtpPurpose) -> None:
        # The entry is already stored, so a failed send can be retried via resend
        try:
            self.email_sender.send_otp(email, code, purpose)
        except DispatchFailed:
            logger.error("Failed to dispatch %s code to %s", purpose.value, email)
            raise

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()

    def _hash_password(self, password: str) -> str:
        secret = password.encode()
        if len(secret) > MAX_PASSWORD_BYTES:
            raise PasswordTooLong()
        return bcrypt.hashpw(secret, bcrypt.gensalt(rounds=self.bcrypt_cost)).decode()
