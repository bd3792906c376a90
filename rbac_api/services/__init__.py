"""Services module."""
from .email import EmailMessage, EmailService, get_email_service
from .users import UserStore, normalize_email

__all__ = [
    "EmailMessage",
    "EmailService",
    "get_email_service",
    "UserStore",
    "normalize_email",
]
