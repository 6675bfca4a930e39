"""Blue/Green Deployment Controller."""

from .backends import (
    CheckResult,
    EndpointChecker,
    InMemoryRoutingBackend,
    InMemoryWorkloadApplier,
    RoutingBackend,
    StaticEndpointChecker,
    WorkloadApplier,
    WorkloadReadiness,
)
from .cancellation import CancellationToken
from .config import (
    DeploymentConfig,
    HealthStatus,
    OrchestrationState,
    ProbeConfig,
    ProbeFailure,
    RolloutParams,
    SlotActivity,
    SlotId,
)
from .deployer import Deployer
from .errors import (
    ActiveSlotProtected,
    DeployError,
    DeploymentCancelled,
    DeploymentControllerError,
    DeployTimeout,
    ErrorCode,
    HealthCheckFailed,
    InvalidTransition,
    RollbackError,
    RunNotFound,
    SlotBusy,
    SwitchError,
)
from .health import HealthProber, HealthVerdict, ProbeAttempt
from .orchestrator import (
    DeploymentOrchestrator,
    DeploymentRequest,
    OrchestrationRun,
    StateTransition,
)
from .records import RecordEvent, RolloutLog, RolloutOutcome, RolloutRecord
from .registry import EnvironmentRegistry, EnvironmentSlot
from .rollback import RollbackController
from .traffic import TrafficRoute, TrafficSwitch

__all__ = [
    # Config
    "DeploymentConfig",
    "HealthStatus",
    "OrchestrationState",
    "ProbeConfig",
    "ProbeFailure",
    "RolloutParams",
    "SlotActivity",
    "SlotId",
    # Errors
    "ActiveSlotProtected",
    "DeployError",
    "DeploymentCancelled",
    "DeploymentControllerError",
    "DeployTimeout",
    "ErrorCode",
    "HealthCheckFailed",
    "InvalidTransition",
    "RollbackError",
    "RunNotFound",
    "SlotBusy",
    "SwitchError",
    # Backends
    "CheckResult",
    "EndpointChecker",
    "InMemoryRoutingBackend",
    "InMemoryWorkloadApplier",
    "RoutingBackend",
    "StaticEndpointChecker",
    "WorkloadApplier",
    "WorkloadReadiness",
    # Registry
    "EnvironmentRegistry",
    "EnvironmentSlot",
    # Components
    "CancellationToken",
    "Deployer",
    "HealthProber",
    "HealthVerdict",
    "ProbeAttempt",
    "TrafficRoute",
    "TrafficSwitch",
    "RollbackController",
    # Records
    "RecordEvent",
    "RolloutLog",
    "RolloutOutcome",
    "RolloutRecord",
    # Orchestrator
    "DeploymentOrchestrator",
    "DeploymentRequest",
    "OrchestrationRun",
    "StateTransition",
]
