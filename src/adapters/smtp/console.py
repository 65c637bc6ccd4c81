"""
Console email sender adapter - Implements EmailSender protocol.

This module provides a console-based implementation of the domain's
email sender port, logging verification codes for local development.
"""

import logging

from src.domain.ports import OtpPurpose

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Implements EmailSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Development only: this is the one place a code is written to the logs.
    """

    def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> None:
        """
        Log verification code to console (simulates email delivery).

        Args:
            email: Recipient email address (normalized by domain layer)
            code: 6-digit verification code
            purpose: Flow the code belongs to
        """
        logger.info("[OTP] Email: %s Purpose: %s Code: %s", email, purpose.value, code)
