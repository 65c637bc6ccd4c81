"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Every response shares the ``ApiResponse`` envelope.
"""

from typing import Annotated, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from src.domain.auth import MAX_PASSWORD_BYTES

T = TypeVar("T")

OtpCode = Annotated[
    str,
    Field(min_length=6, max_length=6, pattern=r"^\d{6}$", description="6-digit verification code"),
]


def check_password_bytes(value: str) -> str:
    """Reject passwords bcrypt cannot hash; the limit is in UTF-8 bytes, not characters."""
    if len(value.encode()) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint."""

    success: bool
    message: str
    data: T | None = None


class RegisterRequest(BaseModel):
    """Request model for user registration."""

    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, description="User password (min 6 characters)")

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return check_password_bytes(value)


class OtpVerificationRequest(BaseModel):
    """Request model for registration and login code verification."""

    email: EmailStr
    otp: OtpCode


class LoginRequest(BaseModel):
    """Request model for the credential phase of login."""

    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return check_password_bytes(value)


class ResendOtpRequest(BaseModel):
    """Request model for re-sending a code for a flow in progress."""

    email: EmailStr
    type: Literal["LOGIN", "REGISTRATION"] = "LOGIN"


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Request model for completing a password reset."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    otp: OtpCode
    new_password: str = Field(
        ..., alias="newPassword", min_length=6, description="New password (min 6 characters)"
    )

    @field_validator("new_password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return check_password_bytes(value)


class LoginData(BaseModel):
    """Payload of a completed login."""

    token: str
    username: str
    email: str


class UserData(BaseModel):
    """Public view of an account."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    username: str
    email: str
    enabled: bool
    email_verified: bool = Field(..., alias="emailVerified")
