"""
SMTP email sender adapter - Implements EmailSender protocol.

Delivers verification codes through an SMTP relay using the standard
library client. Transport failures surface as ``DispatchFailed`` so the
domain never reports a flow as successful when the code was not sent.
"""

import logging
import smtplib
from email.message import EmailMessage

from src.domain.exceptions import DispatchFailed
from src.domain.ports import OtpPurpose

logger = logging.getLogger(__name__)

_PURPOSE_LABELS = {
    OtpPurpose.REGISTRATION: "registration",
    OtpPurpose.LOGIN: "login",
    OtpPurpose.PASSWORD_RESET: "password reset",
}

_BODY = """Dear User,

Your verification code for {purpose} is: {code}

This code is valid for {minutes} minutes only.

If you didn't request this code, please ignore this email.
"""


class SmtpEmailSender:
    """Implements EmailSender protocol via smtplib."""

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
        validity_minutes: int = 5,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout
        self._validity_minutes = validity_minutes

    def build_message(self, email: str, code: str, purpose: OtpPurpose) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = "Your verification code"
        msg["From"] = self._sender
        msg["To"] = email
        msg.set_content(
            _BODY.format(
                purpose=_PURPOSE_LABELS[purpose],
                code=code,
                minutes=self._validity_minutes,
            )
        )
        return msg

    def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> None:
        """
        Send the code in a plain-text email.

        Raises:
            DispatchFailed: On any SMTP or network error
        """
        msg = self.build_message(email, code, purpose)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                if self._use_tls:
                    server.starttls()
                if self._username and self._password:
                    server.login(self._username, self._password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery to %s failed: %s", email, e)
            raise DispatchFailed() from e

        logger.info("Verification email (%s) sent to %s", purpose.value, email)
