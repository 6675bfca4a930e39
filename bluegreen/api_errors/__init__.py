"""API error handling for the controller's HTTP layer."""

from bluegreen.api_errors.config import (
    DEFAULT_ERROR_CONFIG,
    ERROR_STATUS_MAP,
    ErrorConfig,
    ErrorSeverity,
)
from bluegreen.api_errors.handlers import (
    ErrorResponse,
    handle_controller_error,
    handle_unhandled_error,
    register_exception_handlers,
)

__all__ = [
    "DEFAULT_ERROR_CONFIG",
    "ERROR_STATUS_MAP",
    "ErrorConfig",
    "ErrorSeverity",
    "ErrorResponse",
    "handle_controller_error",
    "handle_unhandled_error",
    "register_exception_handlers",
]
