"""
API v1 routes.

Defines REST endpoints for the OTP-gated authentication API.
Domain errors raised by the service are rendered by the handlers in
``src.api.errors``; routes only build success envelopes.
"""

from fastapi import APIRouter, Depends

from src.api.dependencies import get_auth_service, get_bearer_token
from src.api.models import (
    ApiResponse,
    ForgotPasswordRequest,
    LoginData,
    LoginRequest,
    OtpVerificationRequest,
    RegisterRequest,
    ResendOtpRequest,
    ResetPasswordRequest,
    UserData,
)
from src.domain.auth import AuthService
from src.domain.ports import OtpPurpose

router = APIRouter(prefix="/auth", tags=["v1"])

ERROR_RESPONSES = {
    400: {"model": ApiResponse[None], "description": "Invalid or expired code"},
    422: {"model": ApiResponse[dict[str, str]], "description": "Validation error"},
    429: {"model": ApiResponse[None], "description": "Too many codes requested"},
    503: {"model": ApiResponse[None], "description": "Email delivery failed"},
}

FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a password reset code has been sent"


@router.post(
    "/register",
    response_model=ApiResponse[None],
    responses={
        409: {"model": ApiResponse[None], "description": "Email or username taken"},
        **ERROR_RESPONSES,
    },
    summary="Register a new user",
    description="Submit username, email and password to begin registration. "
    "A 6-digit verification code will be sent to the provided email.",
)
def register(
    request_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[None]:
    service.register(request_data.username, request_data.email, request_data.password)
    return ApiResponse(
        success=True,
        message="Registration successful. Please check your email for OTP verification.",
    )


@router.post(
    "/verify-registration",
    response_model=ApiResponse[None],
    responses=ERROR_RESPONSES,
    summary="Verify registration code",
)
def verify_registration(
    request_data: OtpVerificationRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[None]:
    service.verify_registration(request_data.email, request_data.otp)
    return ApiResponse(success=True, message="Email verified successfully. You can now login.")


@router.post(
    "/login",
    response_model=ApiResponse[None],
    responses={
        401: {"model": ApiResponse[None], "description": "Invalid email or password"},
        403: {"model": ApiResponse[None], "description": "Email not verified or account disabled"},
        **ERROR_RESPONSES,
    },
    summary="Check credentials and send a login code",
    description="Credential phase only; the token is returned by /verify-login.",
)
def login(
    request_data: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[None]:
    service.login(request_data.email, request_data.password)
    return ApiResponse(
        success=True,
        message="OTP sent to your email. Please verify to complete login.",
    )


@router.post(
    "/verify-login",
    response_model=ApiResponse[LoginData],
    responses=ERROR_RESPONSES,
    summary="Verify login code and obtain a token",
)
def verify_login(
    request_data: OtpVerificationRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[LoginData]:
    result = service.verify_login(request_data.email, request_data.otp)
    return ApiResponse(
        success=True,
        message="Login successful",
        data=LoginData(
            token=result.token,
            username=result.account.username,
            email=result.account.email,
        ),
    )


@router.post(
    "/resend-otp",
    response_model=ApiResponse[None],
    responses=ERROR_RESPONSES,
    summary="Resend a code for a flow in progress",
)
def resend_otp(
    request_data: ResendOtpRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[None]:
    service.resend_otp(request_data.email, OtpPurpose(request_data.type))
    return ApiResponse(success=True, message="OTP resent successfully")


@router.post(
    "/forgot-password",
    response_model=ApiResponse[None],
    responses={422: ERROR_RESPONSES[422]},
    summary="Request a password reset code",
    description="Always answers with the same message, whether or not the account exists.",
)
def forgot_password(
    request_data: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[None]:
    service.forgot_password(request_data.email)
    return ApiResponse(success=True, message=FORGOT_PASSWORD_MESSAGE)


@router.post(
    "/reset-password",
    response_model=ApiResponse[None],
    responses=ERROR_RESPONSES,
    summary="Reset password with a reset code",
)
def reset_password(
    request_data: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[None]:
    service.reset_password(request_data.email, request_data.otp, request_data.new_password)
    return ApiResponse(success=True, message="Password reset successfully")


@router.get(
    "/current-user",
    response_model=ApiResponse[UserData],
    responses={401: {"model": ApiResponse[None], "description": "Invalid or expired token"}},
    summary="Get the account behind a bearer token",
)
def current_user(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[UserData]:
    account = service.current_user(token)
    return ApiResponse(
        success=True,
        message="Current user",
        data=UserData(
            id=account.id,
            username=account.username,
            email=account.email,
            enabled=account.enabled,
            email_verified=account.email_verified,
        ),
    )
