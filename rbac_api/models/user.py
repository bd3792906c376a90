"""User model."""
import enum
from datetime import date, datetime
from typing import Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import Boolean, Date, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.exceptions import ValidationError
from .base import Base, as_utc, utcnow

DEFAULT_PICTURE = "http://images.fineartamerica.com/images-medium-large/alien-face-.jpg"
MIN_PASSWORD_LENGTH = 6
MIN_AGE_YEARS = 18

# Columns that must never leave the store unless a query asks for them
SECRET_FIELDS = (
    "hashed_password",
    "refresh_token_hash",
    "two_factor_secret",
    "pending_two_factor_secret",
)


class Role(str, enum.Enum):
    """User roles."""

    USER = "user"
    AUDITOR = "auditor"
    ADMIN = "admin"
    ROOT = "root"


class MaritalStatus(str, enum.Enum):
    SINGLE = "Single"
    MARRIED = "Married"
    DIVORCED = "Divorced"
    WIDOWED = "Widowed"


def _secret_column(length: int = 255) -> Mapped[Optional[str]]:
    return mapped_column(String(length), deferred=True, deferred_raiseload=True)


class User(Base):
    """User model for authentication and authorization."""

    __tablename__ = "users"

    # Identity
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    google_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True)

    # Credential secrets
    hashed_password: Mapped[Optional[str]] = _secret_column()
    refresh_token_hash: Mapped[Optional[str]] = _secret_column()
    two_factor_secret: Mapped[Optional[str]] = _secret_column(64)
    pending_two_factor_secret: Mapped[Optional[str]] = _secret_column(64)
    session_id: Mapped[Optional[str]] = mapped_column(String(64))

    # State flags
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_two_factor_auth: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    role: Mapped[str] = mapped_column(String(20), default=Role.USER.value, nullable=False)

    # Token bookkeeping
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    password_reset_token: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    password_reset_token_expires: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    verify_email_token: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    login_token_id: Mapped[Optional[str]] = mapped_column(String(64))

    # Profile
    picture: Mapped[Optional[str]] = mapped_column(String(500), default=DEFAULT_PICTURE)
    age: Mapped[Optional[int]] = mapped_column(Integer)
    gender: Mapped[Optional[str]] = mapped_column(String(50))
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date)
    marital_status: Mapped[Optional[str]] = mapped_column(String(20))
    nationality: Mapped[Optional[str]] = mapped_column(String(100))

    def set_password_hash(self, digest: str) -> None:
        """Store a freshly computed password digest and stamp the change."""
        self.hashed_password = digest
        self.password_changed_at = utcnow()

    def changed_password_after(self, issued_at: float) -> bool:
        """True when the password changed at or after ``issued_at`` (epoch seconds)."""
        if self.password_changed_at is None:
            return False
        return as_utc(self.password_changed_at).timestamp() >= issued_at

    def revoke_session(self) -> None:
        self.refresh_token_hash = None
        self.session_id = None

    def validate(self, password_required: bool = False) -> None:
        """Model-level checks run by ``UserStore.save(validate=True)``."""
        errors = {}

        try:
            validate_email(self.email or "", check_deliverability=False)
        except EmailNotValidError:
            errors["email"] = "Email not valid"

        if password_required and not self.google_id and not self.hashed_password:
            errors["password"] = "Password is required"

        if self.role is not None and self.role not in {role.value for role in Role}:
            errors["role"] = f"Unknown role '{self.role}'"

        if self.age is not None and self.age < 0:
            errors["age"] = "Age must be greater than 0"

        if self.marital_status is not None and self.marital_status not in {
            status.value for status in MaritalStatus
        }:
            errors["marital_status"] = f"Unknown marital status '{self.marital_status}'"

        if self.date_of_birth is not None and not is_adult(self.date_of_birth):
            errors["date_of_birth"] = f"User must be older than {MIN_AGE_YEARS}"

        if errors:
            raise ValidationError("User validation failed", details=errors)

    def __repr__(self) -> str:
        return f"<User(email={self.email}, role={self.role})>"


def is_adult(born: date, today: date = None) -> bool:
    today = today or date.today()
    years = today.year - born.year - ((today.month, today.day) < (born.month, born.day))
    return years >= MIN_AGE_YEARS


def ensure_password_confirmed(password: Optional[str], password_confirm: Optional[str]) -> None:
    """Write-only confirmation check applied before any password is hashed."""
    if not password:
        raise ValidationError("Password is required", details={"password": "required"})
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too short"},
        )
    if password != password_confirm:
        raise ValidationError(
            "Password confirmation must match password",
            details={"password_confirm": "mismatch"},
        )
