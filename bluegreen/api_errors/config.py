"""API Error Configuration.

Maps controller error codes onto HTTP status codes and log severities
for the HTTP layer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from bluegreen.deployment.errors import ErrorCode


class ErrorSeverity(Enum):
    """Severity levels for error logging."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Map error codes to HTTP status codes
ERROR_STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.RUN_NOT_FOUND: 404,
    ErrorCode.SLOT_BUSY: 409,
    ErrorCode.ACTIVE_SLOT_PROTECTED: 409,
    ErrorCode.INVALID_TRANSITION: 409,
    ErrorCode.DEPLOYMENT_CANCELLED: 409,
    ErrorCode.HEALTH_CHECK_FAILED: 422,
    ErrorCode.DEPLOY_ERROR: 502,
    ErrorCode.DEPLOY_TIMEOUT: 504,
    ErrorCode.SWITCH_ERROR: 502,
    ErrorCode.ROLLBACK_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}

# Map error codes to severity
ERROR_SEVERITY_MAP: Dict[ErrorCode, ErrorSeverity] = {
    ErrorCode.VALIDATION_ERROR: ErrorSeverity.LOW,
    ErrorCode.RUN_NOT_FOUND: ErrorSeverity.LOW,
    ErrorCode.SLOT_BUSY: ErrorSeverity.LOW,
    ErrorCode.ACTIVE_SLOT_PROTECTED: ErrorSeverity.MEDIUM,
    ErrorCode.INVALID_TRANSITION: ErrorSeverity.MEDIUM,
    ErrorCode.DEPLOYMENT_CANCELLED: ErrorSeverity.LOW,
    ErrorCode.HEALTH_CHECK_FAILED: ErrorSeverity.MEDIUM,
    ErrorCode.DEPLOY_ERROR: ErrorSeverity.HIGH,
    ErrorCode.DEPLOY_TIMEOUT: ErrorSeverity.HIGH,
    ErrorCode.SWITCH_ERROR: ErrorSeverity.HIGH,
    ErrorCode.ROLLBACK_ERROR: ErrorSeverity.CRITICAL,
    ErrorCode.INTERNAL_ERROR: ErrorSeverity.CRITICAL,
}


@dataclass
class ErrorConfig:
    """Configuration for API error handling."""

    include_request_id: bool = True
    log_all_errors: bool = True
    suppress_internal_details: bool = True


DEFAULT_ERROR_CONFIG = ErrorConfig()
