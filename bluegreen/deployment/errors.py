"""Blue/Green Deployment Controller — Error Taxonomy.

Every controller failure derives from DeploymentControllerError so callers
(and the HTTP layer) can handle the whole hierarchy in one place. Each error
carries a stable code and whether retrying the same request can succeed.
"""

import enum
from typing import Any, Dict, Optional


class ErrorCode(enum.Enum):
    """Stable error codes surfaced to callers and audit records."""

    SLOT_BUSY = "SLOT_BUSY"
    ACTIVE_SLOT_PROTECTED = "ACTIVE_SLOT_PROTECTED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    DEPLOY_ERROR = "DEPLOY_ERROR"
    DEPLOY_TIMEOUT = "DEPLOY_TIMEOUT"
    HEALTH_CHECK_FAILED = "HEALTH_CHECK_FAILED"
    SWITCH_ERROR = "SWITCH_ERROR"
    ROLLBACK_ERROR = "ROLLBACK_ERROR"
    DEPLOYMENT_CANCELLED = "DEPLOYMENT_CANCELLED"
    RUN_NOT_FOUND = "RUN_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DeploymentControllerError(Exception):
    """Base exception for all controller errors."""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.error_code.value,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class SlotBusy(DeploymentControllerError):
    """Another orchestration run is already in flight."""

    error_code = ErrorCode.SLOT_BUSY


class ActiveSlotProtected(DeploymentControllerError):
    """A deploy targeted the slot currently serving live traffic."""

    error_code = ErrorCode.ACTIVE_SLOT_PROTECTED


class InvalidTransition(DeploymentControllerError):
    """A registry or switch precondition was violated."""

    error_code = ErrorCode.INVALID_TRANSITION


class DeployError(DeploymentControllerError):
    """The workload applier rejected or failed the rollout."""

    error_code = ErrorCode.DEPLOY_ERROR
    retryable = True


class DeployTimeout(DeployError):
    """The workload did not report readiness before the deadline."""

    error_code = ErrorCode.DEPLOY_TIMEOUT


class HealthCheckFailed(DeploymentControllerError):
    """A probe run ended with an unhealthy verdict."""

    error_code = ErrorCode.HEALTH_CHECK_FAILED
    retryable = True

    def __init__(self, message: str, verdict: Any = None):
        details = verdict.to_dict() if verdict is not None else {}
        super().__init__(message, details)
        self.verdict = verdict


class SwitchError(DeploymentControllerError):
    """The traffic switch could not be completed.

    ``route_consistent`` is False only when the route could not be reverted
    after a partial switch; the rollback path re-asserts it.
    """

    error_code = ErrorCode.SWITCH_ERROR

    def __init__(self, message: str, route_consistent: bool = True):
        super().__init__(message, {"route_consistent": route_consistent})
        self.route_consistent = route_consistent


class RollbackError(DeploymentControllerError):
    """Rollback failed; operator intervention required."""

    error_code = ErrorCode.ROLLBACK_ERROR


class DeploymentCancelled(DeploymentControllerError):
    """The run was cancelled before traffic moved."""

    error_code = ErrorCode.DEPLOYMENT_CANCELLED


class RunNotFound(DeploymentControllerError):
    """No orchestration run exists with the given id."""

    error_code = ErrorCode.RUN_NOT_FOUND
