"""User schemas."""
from datetime import date, datetime
from typing import List, Optional

from pydantic import EmailStr, Field, field_validator

from ..models.user import MaritalStatus, Role, is_adult
from .common import BaseSchema, RequestSchema


class UserResponse(BaseSchema):
    """Public view of a user; carries no credential or token fields."""

    id: str = Field(..., description="User ID")
    email: str = Field(..., description="User email address")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Role = Field(..., description="User role")
    active: bool
    blocked: bool
    email_verified: bool
    has_two_factor_auth: bool
    picture: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    marital_status: Optional[MaritalStatus] = None
    nationality: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UserEnvelope(BaseSchema):
    user: UserResponse


class UserDetailResponse(BaseSchema):
    status: str = "success"
    data: UserEnvelope


class UserListResponse(BaseSchema):
    status: str = "success"
    results: int
    total: int
    page: int
    data: List[UserResponse]


class UpdateMeRequest(RequestSchema):
    """Profile fields a user may change on their own record."""

    first_name: Optional[str] = Field(None, min_length=2)
    last_name: Optional[str] = Field(None, min_length=2)
    age: Optional[int] = Field(None, ge=0)
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    marital_status: Optional[MaritalStatus] = None
    nationality: Optional[str] = None
    picture: Optional[str] = None

    @field_validator("date_of_birth")
    @classmethod
    def _must_be_adult(cls, value: Optional[date]) -> Optional[date]:
        if value is not None and not is_adult(value):
            raise ValueError("User must be older than 18")
        return value


class UpdateUserRequest(RequestSchema):
    """Fields a privileged actor may change on another user."""

    role: Optional[Role] = None
    blocked: Optional[bool] = None
    active: Optional[bool] = None

    @field_validator("role", "blocked", "active")
    @classmethod
    def _not_null(cls, value):
        # Omit a field to leave it unchanged; null is never a valid value
        if value is None:
            raise ValueError("Field may be omitted but not null")
        return value


class UpdateEmailRequest(RequestSchema):
    email: EmailStr
