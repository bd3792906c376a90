"""Pydantic schemas module."""
from .common import (
    BaseSchema,
    ErrorResponse,
    HealthResponse,
    PaginationParams,
    RequestSchema,
    SuccessResponse,
)
from .auth import (
    AuthResponse,
    EmailRequest,
    LoginRequest,
    RefreshTokenRequest,
    ResetPasswordRequest,
    SignupRequest,
    TwoFactorChallengeResponse,
    TwoFactorCodeRequest,
    TwoFactorLoginRequest,
    TwoFactorSetupResponse,
    UpdatePasswordRequest,
)
from .user import (
    UpdateEmailRequest,
    UpdateMeRequest,
    UpdateUserRequest,
    UserDetailResponse,
    UserEnvelope,
    UserListResponse,
    UserResponse,
)

__all__ = [
    "BaseSchema",
    "ErrorResponse",
    "HealthResponse",
    "PaginationParams",
    "RequestSchema",
    "SuccessResponse",
    "AuthResponse",
    "EmailRequest",
    "LoginRequest",
    "RefreshTokenRequest",
    "ResetPasswordRequest",
    "SignupRequest",
    "TwoFactorChallengeResponse",
    "TwoFactorCodeRequest",
    "TwoFactorLoginRequest",
    "TwoFactorSetupResponse",
    "UpdatePasswordRequest",
    "UpdateEmailRequest",
    "UpdateMeRequest",
    "UpdateUserRequest",
    "UserDetailResponse",
    "UserEnvelope",
    "UserListResponse",
    "UserResponse",
]
