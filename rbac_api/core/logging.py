"""Logging configuration and utilities."""
import logging
import sys
from typing import Any, Dict

import structlog
from structlog.stdlib import LoggerFactory

from ..config import settings


def configure_logging():
    """Configure structured logging."""

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.monitoring.log_json
        else structlog.dev.ConsoleRenderer()
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.monitoring.log_level.upper()),
    )

    # Set third-party log levels
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


class RequestLogger:
    """Request logging utility."""

    @staticmethod
    def log_request(
        method: str,
        path: str,
        request_id: str = None,
        extra_data: Dict[str, Any] = None
    ):
        """Log incoming request."""
        logger = structlog.get_logger("api.request")
        logger.info(
            "Request started",
            method=method,
            path=path,
            request_id=request_id,
            **(extra_data or {})
        )

    @staticmethod
    def log_response(
        method: str,
        path: str,
        status_code: int,
        response_time_ms: float,
        user_id: str = None,
        request_id: str = None,
    ):
        """Log response."""
        logger = structlog.get_logger("api.response")
        logger.info(
            "Request completed",
            method=method,
            path=path,
            status_code=status_code,
            response_time_ms=response_time_ms,
            user_id=user_id,
            request_id=request_id,
        )

    @staticmethod
    def log_unhandled_error(method: str, path: str, request_id: str = None):
        """Log an unexpected exception; call from inside an ``except`` block."""
        logger = structlog.get_logger("api.error")
        logger.error(
            "Unhandled exception",
            method=method,
            path=path,
            request_id=request_id,
            exc_info=True,
        )


class BusinessLogger:
    """User lifecycle event logging utility."""

    @staticmethod
    def log_user_created(user_id: str, email: str, role: str):
        logger = structlog.get_logger("business.user")
        logger.info(
            "User created",
            event_type="user_created",
            user_id=user_id,
            email=email,
            role=role,
        )

    @staticmethod
    def log_user_updated(user_id: str, actor_id: str, fields: list[str]):
        logger = structlog.get_logger("business.user")
        logger.info(
            "User updated",
            event_type="user_updated",
            user_id=user_id,
            actor_id=actor_id,
            fields=fields,
        )

    @staticmethod
    def log_user_deactivated(user_id: str, actor_id: str):
        logger = structlog.get_logger("business.user")
        logger.info(
            "User deactivated",
            event_type="user_deactivated",
            user_id=user_id,
            actor_id=actor_id,
        )

    @staticmethod
    def log_email_failed(recipient: str, subject: str, error_message: str):
        """Log a failed delivery. Never pass the message body: it carries tokens."""
        logger = structlog.get_logger("business.email")
        logger.error(
            "Email delivery failed",
            event_type="email_failed",
            recipient=recipient,
            subject=subject,
            error_message=error_message,
        )


class SecurityLogger:
    """Security event logging utility."""

    @staticmethod
    def log_login_attempt(
        email: str,
        success: bool,
        method: str = "password",
        failure_reason: str = None
    ):
        """Log login attempt."""
        logger = structlog.get_logger("security.auth")
        logger.info(
            "Login attempt",
            event_type="login_attempt",
            email=email,
            success=success,
            method=method,
            failure_reason=failure_reason
        )

    @staticmethod
    def log_unauthorized_access(
        path: str,
        method: str,
        ip_address: str = None,
        reason: str = None
    ):
        """Log unauthorized access attempt."""
        logger = structlog.get_logger("security.access")
        logger.warning(
            "Unauthorized access attempt",
            event_type="unauthorized_access",
            path=path,
            method=method,
            ip_address=ip_address,
            reason=reason
        )

    @staticmethod
    def log_privilege_denied(user_id: str, role: str, required: str):
        logger = structlog.get_logger("security.access")
        logger.warning(
            "Privilege check failed",
            event_type="privilege_denied",
            user_id=user_id,
            role=role,
            required=required,
        )

    @staticmethod
    def log_token_refresh(user_id: str, success: bool, failure_reason: str = None):
        logger = structlog.get_logger("security.token")
        logger.info(
            "Token refresh",
            event_type="token_refresh",
            user_id=user_id,
            success=success,
            failure_reason=failure_reason,
        )

    @staticmethod
    def log_password_changed(user_id: str, method: str):
        logger = structlog.get_logger("security.auth")
        logger.info(
            "Password changed",
            event_type="password_changed",
            user_id=user_id,
            method=method,
        )

    @staticmethod
    def log_two_factor_event(user_id: str, action: str, success: bool = True):
        logger = structlog.get_logger("security.2fa")
        logger.info(
            "Two-factor event",
            event_type="two_factor",
            user_id=user_id,
            action=action,
            success=success,
        )

    @staticmethod
    def log_logout(user_id: str):
        logger = structlog.get_logger("security.auth")
        logger.info("Logout", event_type="logout", user_id=user_id)
