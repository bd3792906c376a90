"""Custom exceptions for the application."""


class BaseAPIException(Exception):
    """Base exception for API errors.

    Instances are operational errors: their message is safe to return to the
    client verbatim.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = None,
        details: dict = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class BadRequestError(BaseAPIException):
    """Malformed or missing input."""

    def __init__(self, message: str = "Bad request", details: dict = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="BAD_REQUEST",
            details=details
        )


class InvalidOrExpiredTokenError(BaseAPIException):
    """Ephemeral token unknown, already consumed or past its expiry."""

    def __init__(self, message: str = "Token expired or invalid", details: dict = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_OR_EXPIRED_TOKEN",
            details=details
        )


class AuthenticationError(BaseAPIException):
    """Authentication error."""

    def __init__(self, message: str = "Authentication failed", details: dict = None):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTHENTICATION_ERROR",
            details=details
        )


class AuthorizationError(BaseAPIException):
    """Authorization error."""

    def __init__(self, message: str = "You do not have permission to perform this action", details: dict = None):
        super().__init__(
            message=message,
            status_code=403,
            error_code="AUTHORIZATION_ERROR",
            details=details
        )


class NotFoundError(BaseAPIException):
    """Resource not found error."""

    def __init__(self, message: str = "Resource not found", details: dict = None):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND_ERROR",
            details=details
        )


class ConflictError(BaseAPIException):
    """Resource conflict error."""

    def __init__(self, message: str = "Resource conflict", details: dict = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code="CONFLICT_ERROR",
            details=details
        )


class ValidationError(BaseAPIException):
    """Input failed model validation."""

    def __init__(self, message: str = "Validation failed", details: dict = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=details
        )


class EmailDeliveryError(BaseAPIException):
    """Outgoing email could not be delivered."""

    def __init__(self, message: str = "There was an error sending the email. Try again later", details: dict = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="EMAIL_DELIVERY_ERROR",
            details=details
        )


class InternalError(BaseAPIException):
    """Unexpected infrastructure failure."""

    def __init__(self, message: str = "Internal server error", details: dict = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="INTERNAL_ERROR",
            details=details
        )


class TokenError(Exception):
    """Signed token failed verification."""


class TokenExpiredError(TokenError):
    """Signed token is past its expiry."""


class TokenInvalidError(TokenError):
    """Signed token is malformed, of the wrong class or has a bad signature."""


class HashIntegrityError(Exception):
    """Stored digest is malformed and cannot be verified against."""
