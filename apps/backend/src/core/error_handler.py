"""Error envelopes and structured logging for the DeepSite API.

Every failure leaves the API as the same JSON envelope::

    {"success": false, "message": "...",
     "error": {"correlation_id": "...", "type": "...", "hints": {...}}}

Domain errors (quota, context size, billing, deployment) keep their status
code and user-facing message in every environment. Anything unexpected is
reported generically in production and with a traceback elsewhere.
"""

import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pythonjsonlogger.json import JsonFormatter
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from core.config import get_settings
from core.exceptions import DomainError
from core.redaction import error_fields_for, redact
from schemas.api import ErrorResponse


_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

logger = logging.getLogger(__name__)


def get_correlation_id() -> str:
    """Return the request's correlation ID, minting one outside a request."""
    correlation_id = _correlation_id_var.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        _correlation_id_var.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_var.set(correlation_id)


class StructuredLogger:
    """Logger that stamps the correlation ID and redacts keyword fields.

    Fields are passed as keyword arguments and land in the record's
    ``structured_data`` extra, which the production JsonFormatter flattens
    into the emitted object::

        slog.warning("Stream ended early", provider="novita", chars=812)
    """

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def _emit(
        self, level: int, message: str, fields: dict[str, Any], exc_info: bool = False
    ) -> None:
        correlation_id = get_correlation_id()
        payload = {"correlation_id": correlation_id, "message": message, **redact(fields)}
        if get_settings().ENVIRONMENT != "production":
            message = f"[{correlation_id}] {message}"
        self.logger.log(
            level, message, extra={"structured_data": payload}, exc_info=exc_info
        )

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields)

    def exception(self, message: str, **fields: Any) -> None:
        """Log at error level with the active exception's traceback."""
        self._emit(logging.ERROR, message, fields, exc_info=True)


structured_logger = StructuredLogger(__name__)


class ExceptionNormalizationMiddleware(BaseHTTPMiddleware):
    """Turn exceptions escaping the route stack into the JSON envelope."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001
            return await global_exception_handler(request, exc)


def _build_error_response(
    *,
    correlation_id: str,
    error_type: str,
    message: str,
    environment: str,
    details: dict[str, Any] | None = None,
    hints: dict[str, Any] | None = None,
    traceback_str: str | None = None,
    exception_type: str | None = None,
    validation_errors: Any | None = None,
    status_code: int = 500,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Assemble the error envelope, dropping fields ``environment`` hides."""
    optional = {
        "hints": hints,
        "details": details,
        "traceback": traceback_str,
        "exception_type": exception_type,
        "validation_errors": validation_errors,
    }
    allowed = error_fields_for(environment)
    error_body: dict[str, Any] = {"correlation_id": correlation_id, "type": error_type}
    error_body.update(
        (field, value)
        for field, value in optional.items()
        if field in allowed and value not in (None, {}, "")
    )

    envelope = ErrorResponse(message=message, error=error_body, success=False)
    return JSONResponse(
        status_code=status_code, content=envelope.model_dump(), headers=headers
    )


async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render a domain error with its own status, message and UI hints."""
    log = structured_logger.error if exc.status_code >= 500 else structured_logger.warning
    log(
        "Domain error",
        error_type=exc.error_code,
        status_code=exc.status_code,
        path=request.url.path,
        domain_message=exc.message,
    )
    return _build_error_response(
        correlation_id=get_correlation_id(),
        error_type=exc.error_code,
        message=exc.message,
        environment=get_settings().ENVIRONMENT,
        hints=exc.hints,
        exception_type=type(exc).__name__,
        status_code=exc.status_code,
    )


def _http_error_response(exc: StarletteHTTPException, environment: str) -> JSONResponse:
    detail = exc.detail
    return _build_error_response(
        correlation_id=get_correlation_id(),
        error_type="http_error",
        message=detail if isinstance(detail, str) else "An HTTP error occurred",
        environment=environment,
        details={"detail": detail},
        exception_type=type(exc).__name__,
        status_code=exc.status_code,
        headers=exc.headers,
    )


def _validation_error_response(
    exc: ValidationError | RequestValidationError, environment: str
) -> JSONResponse:
    errors = exc.errors()
    structured_logger.warning(
        "Validation error",
        validation_errors=[
            {"loc": list(err.get("loc", ())), "type": err.get("type")} for err in errors
        ],
    )
    return _build_error_response(
        correlation_id=get_correlation_id(),
        error_type="validation_error",
        message="Missing required fields",
        environment=environment,
        validation_errors=[
            {"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in errors
        ],
        status_code=400,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map any exception onto the error envelope."""
    if isinstance(exc, DomainError):
        return await domain_exception_handler(request, exc)

    environment = get_settings().ENVIRONMENT
    if isinstance(exc, StarletteHTTPException):
        return _http_error_response(exc, environment)
    if isinstance(exc, ValidationError | RequestValidationError):
        return _validation_error_response(exc, environment)

    structured_logger.exception(
        "Unhandled exception",
        exception_type=type(exc).__name__,
        path=request.url.path,
    )
    return _build_error_response(
        correlation_id=get_correlation_id(),
        error_type="internal_server_error",
        message="An internal error occurred",
        environment=environment,
        traceback_str="".join(traceback.format_exception(exc)).strip(),
        exception_type=type(exc).__name__,
    )


def setup_logging() -> None:
    """Install a stdout handler on the root logger once.

    Production emits one JSON object per record; other environments use a
    plain line format.
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    environment = get_settings().ENVIRONMENT
    level = logging.DEBUG if environment == "development" else logging.INFO

    formatter: logging.Formatter
    if environment == "production":
        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    if environment == "production":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)
