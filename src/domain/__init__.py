"""
Domain layer - Pure business logic with zero web or database imports.

This package contains the OTP-gated authentication state machine, the OTP
ledger and the token issuer. It defines its own port interfaces for
infrastructure abstraction, ensuring true hexagonal architecture decoupling.
"""

from .auth import AuthService
from .exceptions import (
    AccountDisabled,
    AlreadyRegistered,
    AuthError,
    DispatchFailed,
    EmailNotVerified,
    InvalidCredentials,
    InvalidToken,
    NoPendingLogin,
    OtpAlreadyConsumed,
    OtpError,
    OtpExpired,
    OtpMismatch,
    OtpNotFound,
    OtpRateLimited,
    OtpTooManyAttempts,
    StorageUnavailable,
    UsernameTaken,
)
from .models import Account, LoginResult, OtpEntry, PendingLogin
from .otp import OtpLedger
from .ports import (
    AccountRepository,
    ClaimResult,
    EmailSender,
    OtpPurpose,
    OtpRepository,
    PendingLoginRepository,
    VerifyResult,
)
from .tokens import TokenIssuer

__all__ = [
    "Account",
    "AccountDisabled",
    "AccountRepository",
    "AlreadyRegistered",
    "AuthError",
    "AuthService",
    "ClaimResult",
    "DispatchFailed",
    "EmailNotVerified",
    "EmailSender",
    "InvalidCredentials",
    "InvalidToken",
    "LoginResult",
    "NoPendingLogin",
    "OtpAlreadyConsumed",
    "OtpEntry",
    "OtpError",
    "OtpExpired",
    "OtpLedger",
    "OtpMismatch",
    "OtpNotFound",
    "OtpPurpose",
    "OtpRateLimited",
    "OtpRepository",
    "OtpTooManyAttempts",
    "PendingLogin",
    "PendingLoginRepository",
    "StorageUnavailable",
    "TokenIssuer",
    "UsernameTaken",
    "VerifyResult",
]
