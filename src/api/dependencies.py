"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
Repositories are created once during app lifespan and stored in app.state.
"""

from functools import lru_cache

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.adapters.smtp.console import ConsoleEmailSender
from src.adapters.smtp.sender import SmtpEmailSender
from src.config.settings import Settings, get_settings
from src.domain.auth import AuthService
from src.domain.exceptions import InvalidToken
from src.domain.otp import OtpLedger
from src.domain.ports import EmailSender, OtpRepository
from src.domain.tokens import TokenIssuer


def build_email_sender(settings: Settings) -> EmailSender:
    """Pick the email adapter named by ``settings.email_backend``."""
    if settings.email_backend == "smtp":
        return SmtpEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_from,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
            validity_minutes=max(1, settings.otp_ttl_seconds // 60),
        )
    return ConsoleEmailSender()


def build_otp_ledger(repository: OtpRepository, settings: Settings) -> OtpLedger:
    return OtpLedger(
        repository=repository,
        code_length=settings.otp_length,
        ttl_seconds=settings.otp_ttl_seconds,
        max_attempts=settings.otp_max_attempts,
        issue_limit=settings.otp_issue_limit,
        issue_window_seconds=settings.otp_issue_window_seconds,
    )


@lru_cache
def get_email_sender() -> EmailSender:
    """Get the configured email sender (singleton; adapters are stateless)."""
    return build_email_sender(get_settings())


def get_token_issuer(settings: Settings = Depends(get_settings)) -> TokenIssuer:
    return TokenIssuer(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl_seconds=settings.token_ttl_seconds,
    )


def get_auth_service(
    request: Request,
    settings: Settings = Depends(get_settings),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
    email_sender: EmailSender = Depends(get_email_sender),
) -> AuthService:
    """
    Create the auth service with injected dependencies.

    Wires together the repositories held in app state, the OTP ledger,
    the email sender and the token issuer.
    """
    state = request.app.state
    return AuthService(
        accounts=state.account_repository,
        otp_ledger=build_otp_ledger(state.otp_repository, settings),
        pending_logins=state.pending_login_repository,
        email_sender=email_sender,
        token_issuer=token_issuer,
        bcrypt_cost=settings.bcrypt_cost,
        pending_login_ttl_seconds=settings.pending_login_ttl_seconds,
    )


# Bearer security scheme for OpenAPI documentation. auto_error is off so a
# missing header is reported through the response envelope.
http_bearer = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
) -> str:
    """
    Extract the raw token from the ``Authorization: Bearer`` header.

    Raises:
        InvalidToken: If the header is missing or not a bearer credential
    """
    if credentials is None or not credentials.credentials:
        raise InvalidToken("Missing bearer token")
    return credentials.credentials
