"""API middleware and exception handlers for logging and error rendering."""
import time
import uuid
from typing import Any, Callable, Dict

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import settings
from ..core.exceptions import BaseAPIException
from ..core.logging import RequestLogger
from ..schemas.common import ErrorResponse


def error_response(
    status_code: int,
    message: str,
    error_code: str,
    details: Dict[str, Any] = None,
) -> JSONResponse:
    """Render an error in the shared shape: 'fail' for 4xx, 'error' for 5xx."""
    body = ErrorResponse(
        status="fail" if 400 <= status_code < 500 else "error",
        error=message,
        error_code=error_code,
        details=details or {},
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging requests and responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        RequestLogger.log_request(
            method=request.method,
            path=str(request.url.path),
            request_id=request_id,
            extra_data={
                "client_ip": request.client.host if request.client else None,
                "user_agent": request.headers.get("user-agent"),
            },
        )

        response = await call_next(request)

        # Set by the protect dependency once the request is authenticated
        user_id = getattr(request.state, "user_id", None)
        RequestLogger.log_response(
            method=request.method,
            path=str(request.url.path),
            status_code=response.status_code,
            response_time_ms=(time.time() - start_time) * 1000,
            user_id=user_id,
            request_id=request_id,
        )

        response.headers["X-Request-ID"] = request_id
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn raised exceptions into JSON error responses.

    Operational errors keep their message; anything else is logged with its
    traceback and answered with a generic 500.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except BaseAPIException as e:
            return error_response(e.status_code, e.message, e.error_code, e.details)

        except Exception as e:
            RequestLogger.log_unhandled_error(
                method=request.method,
                path=str(request.url.path),
                request_id=getattr(request.state, "request_id", None),
            )
            return error_response(
                500,
                "Something went very wrong!",
                "INTERNAL_ERROR",
                {"message": str(e)} if settings.debug else None,
            )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors (400), reported per field."""
    details = {}
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details[location or "body"] = error.get("msg", "Invalid value")
    return error_response(400, "Invalid input data", "VALIDATION_ERROR", details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(exc.status_code, message, "HTTP_EXCEPTION")
