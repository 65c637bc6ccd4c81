"""
OTP ledger - Issuance and verification rules for one-time codes.

Entry lifecycle per (email, purpose) key
========================================

    issue   -> ACTIVE (fresh code, attempt_count=0, consumed=False)
    verify  -> ACTIVE (mismatch, attempt_count += 1)
            -> CONSUMED (match, terminal until the next issue)
    time    -> EXPIRED (read-time predicate, terminal until the next issue)
    max mismatches -> dead (TOO_MANY_ATTEMPTS until the next issue)

A new issue always overwrites the previous entry, so at most one code per
key can ever verify. The repository provides the per-key serialization
point; ``judge_attempt`` is the single place the verification order lives,
and every adapter calls it while holding that serialization point.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime

from .exceptions import (
    OtpAlreadyConsumed,
    OtpError,
    OtpExpired,
    OtpMismatch,
    OtpNotFound,
    OtpRateLimited,
    OtpTooManyAttempts,
)
from .models import OtpEntry
from .ports import OtpPurpose, OtpRepository, VerifyResult

logger = logging.getLogger(__name__)

_FAILURES: dict[VerifyResult, type[OtpError]] = {
    VerifyResult.NOT_FOUND: OtpNotFound,
    VerifyResult.EXPIRED: OtpExpired,
    VerifyResult.ALREADY_CONSUMED: OtpAlreadyConsumed,
    VerifyResult.TOO_MANY_ATTEMPTS: OtpTooManyAttempts,
    VerifyResult.MISMATCH: OtpMismatch,
}


def judge_attempt(
    entry: OtpEntry | None, candidate: str, now: datetime, max_attempts: int
) -> VerifyResult:
    """
    Decide the outcome of a verification attempt.

    The code comparison always runs (against a dummy value when there is
    no entry) so response time does not depend on which check fails.

    Args:
        entry: Current entry for the key, or None
        candidate: Code submitted by the caller
        now: Clock of the store holding the entry
        max_attempts: Mismatches allowed before the entry is dead

    Returns:
        VerifyResult; the caller applies the matching mutation
    """
    stored_code = entry.code if entry is not None else "0" * len(candidate)
    code_valid = secrets.compare_digest(stored_code.encode(), candidate.encode())

    if entry is None:
        return VerifyResult.NOT_FOUND
    if now >= entry.expires_at:
        return VerifyResult.EXPIRED
    if entry.consumed:
        return VerifyResult.ALREADY_CONSUMED
    if entry.attempt_count >= max_attempts:
        return VerifyResult.TOO_MANY_ATTEMPTS
    if not code_valid:
        return VerifyResult.MISMATCH
    return VerifyResult.SUCCESS


def raise_for_result(result: VerifyResult) -> None:
    """Raise the OtpError matching a failed VerifyResult."""
    if result is not VerifyResult.SUCCESS:
        raise _FAILURES[result]()


@dataclass
class OtpLedger:
    """
    Domain service for short-lived verification codes.

    Owns code generation and the issuance/verification policy knobs;
    persistence and atomicity are delegated to the repository.
    """

    repository: OtpRepository
    code_length: int = 6
    ttl_seconds: int = 300
    max_attempts: int = 5
    issue_limit: int = 3
    issue_window_seconds: int = 600

    def issue(self, email: str, purpose: OtpPurpose) -> str:
        """
        Store a fresh code for (email, purpose), superseding any prior one.

        Returns:
            The code, to be handed to the email sender only

        Raises:
            OtpRateLimited: If the key exhausted its issuance window
        """
        code = self._generate_code()
        stored = self.repository.issue(
            email,
            purpose,
            code,
            self.ttl_seconds,
            self.issue_limit,
            self.issue_window_seconds,
        )
        if not stored:
            logger.warning("OTP issuance rate limited for %s (%s)", email, purpose.value)
            raise OtpRateLimited()
        logger.info("OTP issued for %s (%s)", email, purpose.value)
        return code

    def verify(self, email: str, purpose: OtpPurpose, code: str) -> VerifyResult:
        """Verify and, on success, consume the code for (email, purpose)."""
        result = self.repository.verify(email, purpose, code, self.max_attempts)
        if result is VerifyResult.SUCCESS:
            logger.info("OTP verified for %s (%s)", email, purpose.value)
        else:
            logger.warning(
                "OTP verification failed for %s (%s): %s", email, purpose.value, result.value
            )
        return result

    def consume(self, email: str, purpose: OtpPurpose, code: str) -> None:
        """
        Verify the code, raising the matching OtpError on any failure.

        Raises:
            OtpNotFound, OtpExpired, OtpAlreadyConsumed,
            OtpTooManyAttempts, OtpMismatch
        """
        raise_for_result(self.verify(email, purpose, code))

    def purge_expired(self) -> int:
        """Reclaim storage held by entries that can no longer matter."""
        return self.repository.purge_expired(self.issue_window_seconds)

    def _generate_code(self) -> str:
        """
        Generate a cryptographically secure numeric code.

        Returns a string to preserve leading zeros.
        """
        return "".join(secrets.choice("0123456789") for _ in range(self.code_length))
