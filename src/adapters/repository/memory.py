"""
In-memory repository adapters - Process-local implementations of the ports.

Used for ``storage_backend=memory`` (local development) and for tests that
exercise the domain without PostgreSQL. Atomicity comes from locks:

- OTP entries: one lock per (email, purpose) key, so unrelated keys never
  contend. The lock registry itself is guarded by a short-lived lock.
- Accounts and pending logins: a single lock each, since username and
  email uniqueness span all rows.

Every adapter takes a ``clock`` callable returning an aware UTC datetime,
which tests replace to move time forward.
"""

import contextlib
import threading
from collections.abc import Callable, Iterator
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from src.domain.models import Account, OtpEntry, PendingLogin
from src.domain.otp import judge_attempt
from src.domain.ports import ClaimResult, OtpPurpose, VerifyResult

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryAccountRepository:
    """
    Implements AccountRepository protocol with a dict keyed by email.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_email: dict[str, Account] = {}
        self._next_id = 1

    def claim_account(self, username: str, email: str, password_hash: str) -> ClaimResult:
        with self._lock:
            existing = self._by_email.get(email)
            if existing is not None and existing.email_verified:
                return ClaimResult.EMAIL_ACTIVE

            owner = next(
                (a for a in self._by_email.values() if a.username == username), None
            )
            if owner is not None and owner.email != email:
                return ClaimResult.USERNAME_TAKEN

            if existing is not None:
                self._by_email[email] = replace(
                    existing, username=username, password_hash=password_hash
                )
                return ClaimResult.RESTARTED

            self._by_email[email] = Account(
                id=self._next_id,
                username=username,
                email=email,
                password_hash=password_hash,
                enabled=False,
                email_verified=False,
            )
            self._next_id += 1
            return ClaimResult.CREATED

    def get_by_email(self, email: str) -> Account | None:
        with self._lock:
            return self._by_email.get(email)

    def get_by_id(self, account_id: int) -> Account | None:
        with self._lock:
            return next((a for a in self._by_email.values() if a.id == account_id), None)

    def mark_verified(self, email: str) -> bool:
        with self._lock:
            account = self._by_email.get(email)
            if account is None:
                return False
            self._by_email[email] = replace(account, email_verified=True, enabled=True)
            return True

    def update_password(self, email: str, password_hash: str) -> bool:
        with self._lock:
            account = self._by_email.get(email)
            if account is None:
                return False
            self._by_email[email] = replace(account, password_hash=password_hash)
            return True


class InMemoryOtpRepository:
    """
    Implements OtpRepository protocol with per-key locking.

    The rate-limit window (start, count) is stored next to the entry and
    updated under the same key lock, like the entry itself. Key locks are
    created only by ``issue`` and retired by ``purge_expired``, so the lock
    registry never outgrows the stored entries.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._locks: dict[tuple[str, OtpPurpose], threading.Lock] = {}
        self._entries: dict[tuple[str, OtpPurpose], OtpEntry] = {}
        self._windows: dict[tuple[str, OtpPurpose], tuple[datetime, int]] = {}

    def _existing_lock(self, key: tuple[str, OtpPurpose]) -> "threading.Lock | None":
        with self._registry_lock:
            return self._locks.get(key)

    @contextlib.contextmanager
    def _key_lock(
        self, key: tuple[str, OtpPurpose], create: bool = True
    ) -> Iterator[None]:
        """
        Hold the lock for ``key``.

        Without ``create``, a key that has no lock runs under the registry
        lock instead, so lookups of unknown keys leave nothing behind.

        A purge may retire a lock while another thread waits on it, so the
        lock is re-checked against the registry after it is acquired.
        """
        while True:
            with self._registry_lock:
                lock = self._locks.get(key)
                if lock is None:
                    if not create:
                        yield
                        return
                    lock = self._locks[key] = threading.Lock()
            lock.acquire()
            if self._existing_lock(key) is lock:
                break
            lock.release()
        try:
            yield
        finally:
            lock.release()

    def issue(
        self,
        email: str,
        purpose: OtpPurpose,
        code: str,
        ttl_seconds: int,
        issue_limit: int,
        window_seconds: int,
    ) -> bool:
        key = (email, purpose)
        with self._key_lock(key):
            now = self._clock()
            window_start, count = self._windows.get(key, (now, 0))
            if now - window_start >= timedelta(seconds=window_seconds):
                window_start, count = now, 0
            if count >= issue_limit:
                return False

            self._windows[key] = (window_start, count + 1)
            self._entries[key] = OtpEntry(
                email=email,
                purpose=purpose,
                code=code,
                expires_at=now + timedelta(seconds=ttl_seconds),
                consumed=False,
                attempt_count=0,
            )
            return True

    def verify(
        self, email: str, purpose: OtpPurpose, code: str, max_attempts: int
    ) -> VerifyResult:
        key = (email, purpose)
        with self._key_lock(key, create=False):
            entry = self._entries.get(key)
            result = judge_attempt(entry, code, self._clock(), max_attempts)
            if result is VerifyResult.MISMATCH:
                self._entries[key] = replace(entry, attempt_count=entry.attempt_count + 1)
            elif result is VerifyResult.SUCCESS:
                self._entries[key] = replace(entry, consumed=True)
            return result

    def get(self, email: str, purpose: OtpPurpose) -> OtpEntry | None:
        """Snapshot of the entry for a key (inspection helper)."""
        with self._key_lock((email, purpose), create=False):
            return self._entries.get((email, purpose))

    def purge_expired(self, window_seconds: int) -> int:
        purged = 0
        with self._registry_lock:
            for key, lock in list(self._locks.items()):
                # Busy keys are left for the next sweep
                if not lock.acquire(blocking=False):
                    continue
                try:
                    now = self._clock()
                    entry = self._entries.get(key)
                    window = self._windows.get(key)
                    if entry is not None and now < entry.expires_at:
                        continue
                    if window is not None and now - window[0] < timedelta(seconds=window_seconds):
                        continue
                    if self._entries.pop(key, None) is not None:
                        purged += 1
                    self._windows.pop(key, None)
                    del self._locks[key]
                finally:
                    lock.release()
        return purged


class InMemoryPendingLoginRepository:
    """Implements PendingLoginRepository protocol with a dict keyed by email."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: dict[str, PendingLogin] = {}

    def create(self, email: str, account_id: int, ttl_seconds: int) -> None:
        with self._lock:
            self._pending[email] = PendingLogin(
                email=email,
                account_id=account_id,
                expires_at=self._clock() + timedelta(seconds=ttl_seconds),
            )

    def exists(self, email: str) -> bool:
        with self._lock:
            pending = self._pending.get(email)
            return pending is not None and self._clock() < pending.expires_at

    def refresh(self, email: str, ttl_seconds: int) -> bool:
        with self._lock:
            now = self._clock()
            pending = self._pending.get(email)
            if pending is None or now >= pending.expires_at:
                return False
            self._pending[email] = replace(
                pending, expires_at=now + timedelta(seconds=ttl_seconds)
            )
            return True

    def take(self, email: str) -> int | None:
        with self._lock:
            pending = self._pending.pop(email, None)
            if pending is None or self._clock() >= pending.expires_at:
                return None
            return pending.account_id

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [e for e, p in self._pending.items() if now >= p.expires_at]
            for email in expired:
                del self._pending[email]
            return len(expired)
