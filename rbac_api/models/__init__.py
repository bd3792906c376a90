"""Database models module."""
from .base import Base
from .user import User, Role, MaritalStatus

__all__ = [
    "Base",
    "User",
    "Role",
    "MaritalStatus",
]
