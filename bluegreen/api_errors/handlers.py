"""Exception Handlers & Error Response Builder.

Turns controller exceptions into a consistent JSON error envelope and
registers the handlers on a FastAPI application.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bluegreen.api_errors.config import (
    DEFAULT_ERROR_CONFIG,
    ERROR_SEVERITY_MAP,
    ERROR_STATUS_MAP,
    ErrorConfig,
    ErrorSeverity,
)
from bluegreen.deployment.errors import DeploymentControllerError, ErrorCode
from bluegreen.logging_config.context import get_request_id

logger = logging.getLogger(__name__)


@dataclass
class ErrorResponse:
    """Structured error response envelope."""

    code: str
    message: str
    status_code: int = 500
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)
    request_id: Optional[str] = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": {
                "code": self.code,
                "message": self.message,
                "retryable": self.retryable,
                "timestamp": self.timestamp,
            }
        }
        if self.details:
            body["error"]["details"] = self.details
        if self.request_id:
            body["error"]["request_id"] = self.request_id
        return body

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


def _log_error(error_code: ErrorCode, message: str, status_code: int, config: ErrorConfig) -> None:
    """Log the error at appropriate severity level."""
    if not config.log_all_errors:
        return

    severity = ERROR_SEVERITY_MAP.get(error_code, ErrorSeverity.MEDIUM)
    log_msg = "API Error [%s] (%d): %s"

    if severity == ErrorSeverity.CRITICAL:
        logger.critical(log_msg, error_code.value, status_code, message)
    elif severity == ErrorSeverity.HIGH:
        logger.error(log_msg, error_code.value, status_code, message)
    elif severity == ErrorSeverity.MEDIUM:
        logger.warning(log_msg, error_code.value, status_code, message)
    else:
        logger.info(log_msg, error_code.value, status_code, message)


def handle_controller_error(
    exc: DeploymentControllerError,
    config: Optional[ErrorConfig] = None,
) -> ErrorResponse:
    """Map a controller error onto an ErrorResponse."""
    config = config or DEFAULT_ERROR_CONFIG
    status_code = ERROR_STATUS_MAP.get(exc.error_code, 500)
    _log_error(exc.error_code, exc.message, status_code, config)
    return ErrorResponse(
        code=exc.error_code.value,
        message=exc.message,
        status_code=status_code,
        retryable=exc.retryable,
        details=exc.details,
        request_id=get_request_id() if config.include_request_id else None,
    )


def handle_unhandled_error(exc: Exception, config: Optional[ErrorConfig] = None) -> ErrorResponse:
    """Handle any unhandled exception with a safe 500 response."""
    config = config or DEFAULT_ERROR_CONFIG
    logger.error("Unhandled exception: %s: %s", type(exc).__name__, exc, exc_info=exc)

    message = "An internal error occurred"
    if not config.suppress_internal_details:
        message = f"{type(exc).__name__}: {exc}"

    return ErrorResponse(
        code=ErrorCode.INTERNAL_ERROR.value,
        message=message,
        status_code=500,
        request_id=get_request_id() if config.include_request_id else None,
    )


def register_exception_handlers(app: FastAPI, config: Optional[ErrorConfig] = None) -> None:
    """Register all exception handlers on a FastAPI application."""
    config = config or DEFAULT_ERROR_CONFIG

    @app.exception_handler(DeploymentControllerError)
    async def _controller_error(request: Request, exc: DeploymentControllerError):
        return handle_controller_error(exc, config).to_response()

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        _log_error(ErrorCode.VALIDATION_ERROR, str(exc), 400, config)
        return ErrorResponse(
            code=ErrorCode.VALIDATION_ERROR.value,
            message="Request validation failed",
            status_code=400,
            details={"errors": jsonable_encoder(exc.errors())},
            request_id=get_request_id() if config.include_request_id else None,
        ).to_response()

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        return handle_unhandled_error(exc, config).to_response()

    logger.info("Registered controller API exception handlers")
