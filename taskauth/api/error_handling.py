"""Exception handlers mapping auth errors onto the response envelope."""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from taskauth.api.middleware import CORRELATION_ID_HEADER
from taskauth.models.auth import ErrorEnvelope
from taskauth.services.errors import (
    AuthServiceError,
    BadCredentialsError,
    CredentialError,
    StorageError,
)

logger = structlog.get_logger(__name__)

GENERIC_SERVER_ERROR = "Internal server error"

# Error kinds for statuses raised by routing rather than by the auth core
HTTP_ERROR_KINDS = {
    401: "Invalid",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
}


def error_response(
    status_code: int,
    message: str,
    kind: str | None = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Build an ``{status, message, error}`` JSON response."""
    envelope = ErrorEnvelope(status=status_code, message=message, error=kind)
    headers = dict(headers or {})
    if status_code == 401:
        headers.setdefault("WWW-Authenticate", "Bearer")
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(exclude_none=True),
        headers=headers or None,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for auth errors, request validation and crashes."""

    @app.exception_handler(AuthServiceError)
    async def handle_auth_error(request: Request, exc: AuthServiceError) -> JSONResponse:
        if exc.status_code >= 500:
            # Details stay in the logs; the client gets a generic message
            logger.error(
                "auth_service_error",
                status_code=exc.status_code,
                error_kind=exc.kind,
                detail=exc.message,
                cause=repr(exc.__cause__) if exc.__cause__ else None,
            )
            message = exc.default_message if isinstance(exc, StorageError) else exc.message
            return error_response(exc.status_code, message, exc.kind)

        log_fn = logger.info if isinstance(exc, (CredentialError, BadCredentialsError)) else logger.warning
        log_fn(
            "auth_request_rejected",
            status_code=exc.status_code,
            error_kind=exc.kind,
            detail=exc.message,
        )
        return error_response(exc.status_code, exc.message, exc.kind)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        if errors:
            first_error = errors[0]
            field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
            message = first_error.get("msg", "Validation failed")
            detail = f"Field '{field}': {message}"
        else:
            detail = "Request validation failed"

        logger.warning("validation_error", detail=detail)
        return error_response(400, detail, "ValidationFailed")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Unknown routes, wrong methods and other framework-raised statuses."""
        kind = HTTP_ERROR_KINDS.get(exc.status_code, "HTTPError")
        logger.info(
            "http_error",
            status_code=exc.status_code,
            error_kind=kind,
            detail=str(exc.detail),
        )
        return error_response(exc.status_code, str(exc.detail), kind, headers=exc.headers)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error", error=str(exc))
        # Runs outside CorrelationIdMiddleware, so the header is set here
        headers = None
        correlation_id = getattr(request.state, "correlation_id", None)
        if correlation_id:
            headers = {CORRELATION_ID_HEADER: correlation_id}
        return error_response(500, GENERIC_SERVER_ERROR, "Internal", headers=headers)
