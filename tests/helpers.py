"""Test doubles shared across the unit, adversarial and integration suites."""

from datetime import datetime, timedelta, timezone

from src.domain.exceptions import DispatchFailed
from src.domain.ports import OtpPurpose

TEST_BCRYPT_COST = 4
TEST_JWT_SECRET = "test-secret-key-with-at-least-32-bytes!"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingEmailSender:
    """EmailSender that keeps every message instead of delivering it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, OtpPurpose]] = []
        self.fail_next = False

    def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> None:
        if self.fail_next:
            self.fail_next = False
            raise DispatchFailed()
        self.sent.append((email, code, purpose))

    def codes_for(self, email: str, purpose: OtpPurpose) -> list[str]:
        return [c for e, c, p in self.sent if e == email and p is purpose]

    def last_code(self, email: str, purpose: OtpPurpose) -> str:
        codes = self.codes_for(email, purpose)
        assert codes, f"No {purpose.value} code sent to {email}"
        return codes[-1]


def wrong_code(code: str) -> str:
    """A 6-digit code guaranteed to differ from ``code``."""
    return f"{(int(code) + 1) % 1_000_000:06d}"
