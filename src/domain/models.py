"""
Domain models - Plain data carried between the domain and its ports.

These are framework-free dataclasses. Adapters build them from storage
rows; the domain never mutates them in place.
"""

from dataclasses import dataclass
from datetime import datetime

from .ports import OtpPurpose


@dataclass(frozen=True)
class Account:
    """A registered identity with its credential and gating flags."""

    id: int
    username: str
    email: str
    password_hash: str
    enabled: bool
    email_verified: bool


@dataclass(frozen=True)
class OtpEntry:
    """
    Snapshot of a verification code bound to (email, purpose).

    Expiry is evaluated at read time against the store's clock; an entry
    past ``expires_at`` may still be present until the reclamation sweep.
    """

    email: str
    purpose: OtpPurpose
    code: str
    expires_at: datetime
    consumed: bool
    attempt_count: int


@dataclass(frozen=True)
class PendingLogin:
    """Marker that the password phase of a login succeeded for ``email``."""

    email: str
    account_id: int
    expires_at: datetime


@dataclass(frozen=True)
class LoginResult:
    """Payload of a completed login: session token plus the account."""

    token: str
    account: Account
