"""Authentication schemas."""
from typing import Optional

from pydantic import EmailStr, Field

from .common import BaseSchema, RequestSchema
from .user import UserEnvelope


class SignupRequest(RequestSchema):
    """Signup request schema. Confirmation is checked by the auth service."""

    first_name: Optional[str] = Field(None, min_length=2, description="First name")
    last_name: Optional[str] = Field(None, min_length=2, description="Last name")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=6, description="User password")
    password_confirm: Optional[str] = Field(None, description="Must equal password")


class LoginRequest(RequestSchema):
    """Login request schema; missing fields are reported by the auth service."""

    email: Optional[str] = Field(None, description="User email")
    password: Optional[str] = Field(None, description="User password")


class TwoFactorLoginRequest(RequestSchema):
    """Second step of a two-factor login."""

    id: str = Field(..., description="User ID returned by the first login step")
    code: str = Field(..., description="Current TOTP code")


class TwoFactorCodeRequest(RequestSchema):
    code: str = Field(..., description="Current TOTP code")


class EmailRequest(RequestSchema):
    """Passwordless login or forgotten password request."""

    email: EmailStr = Field(..., description="User email")


class ResetPasswordRequest(RequestSchema):
    password: str = Field(..., min_length=6, description="New password")
    password_confirm: Optional[str] = Field(None, description="Must equal password")


class UpdatePasswordRequest(RequestSchema):
    current_password: str = Field(..., description="Current password")
    new_password: str = Field(..., min_length=6, description="New password")
    new_password_confirm: Optional[str] = Field(None, description="Must equal new password")


class RefreshTokenRequest(RequestSchema):
    """Refresh token request; the ``refreshToken`` cookie is used when omitted."""

    refresh_token: Optional[str] = Field(None, description="Refresh token")


class AuthResponse(BaseSchema):
    """Response to every successful authentication.

    The refresh token travels only in its http-only cookie.
    """

    status: str = "success"
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    data: UserEnvelope


class TwoFactorChallenge(BaseSchema):
    id: str


class TwoFactorChallengeResponse(BaseSchema):
    """First login step succeeded but a TOTP code is still required."""

    status: str = "success"
    message: str = "Provide the 2FA token to continue"
    data: TwoFactorChallenge


class TwoFactorSetup(BaseSchema):
    secret: str
    provisioning_uri: str


class TwoFactorSetupResponse(BaseSchema):
    status: str = "success"
    message: str = "Scan the code and confirm it to enable two-factor login"
    data: TwoFactorSetup
