"""
Domain exceptions - Semantic error types for the authentication flows.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Each exception carries a human-readable default message; the API layer
maps the exception class to a status code and the response envelope.
"""


class AuthError(Exception):
    """Base class for authentication domain errors."""

    message = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class InvalidCredentials(AuthError):
    """Unknown email or wrong password (deliberately indistinguishable)."""

    message = "Invalid email or password"


class AccountDisabled(AuthError):
    message = "Account is disabled"


class EmailNotVerified(AuthError):
    message = "Email not verified. Please verify your email first."


class AlreadyRegistered(AuthError):
    """Email belongs to an account that already completed verification."""

    message = "Email already registered"


class UsernameTaken(AuthError):
    message = "Username already taken"


class PasswordTooLong(AuthError):
    """bcrypt only accepts passwords of up to 72 bytes."""

    message = "Password must be at most 72 bytes"


class OtpError(AuthError):
    """Base class for OTP verification failures."""

    message = "Invalid or expired OTP"


class OtpNotFound(OtpError):
    message = "No verification code found. Please request a new one."


class OtpExpired(OtpError):
    message = "Verification code has expired. Please request a new one."


class OtpAlreadyConsumed(OtpError):
    message = "Verification code has already been used"


class OtpMismatch(OtpError):
    message = "Invalid verification code"


class OtpTooManyAttempts(OtpError):
    message = "Too many failed attempts. Please request a new code."


class OtpRateLimited(AuthError):
    """Issuance cap for (email, purpose) reached in the current window."""

    message = "Too many codes requested. Please try again later."


class NoPendingLogin(AuthError):
    message = "No login in progress. Please log in again."


class DispatchFailed(AuthError):
    """The notification sink could not deliver the code."""

    message = "Failed to send verification email. Please try again."


class StorageUnavailable(AuthError):
    """The backing store is unreachable; never recovered locally."""

    message = "An unexpected error occurred"


class InvalidToken(AuthError):
    message = "Invalid or expired token"
