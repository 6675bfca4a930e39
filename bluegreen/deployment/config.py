"""Blue/Green Deployment Controller — Configuration."""

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class SlotId(str, enum.Enum):
    """The two deployment slots."""

    BLUE = "blue"
    GREEN = "green"

    @property
    def other(self) -> "SlotId":
        return SlotId.GREEN if self is SlotId.BLUE else SlotId.BLUE


class HealthStatus(enum.Enum):
    """Last known health of a slot."""

    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class SlotActivity(enum.Enum):
    """Whether a slot is serving live traffic."""

    ACTIVE = "active"
    STANDBY = "standby"


class OrchestrationState(enum.Enum):
    """States of a single orchestration run."""

    IDLE = "idle"
    DEPLOYING = "deploying"
    PRE_SWITCH_PROBING = "pre_switch_probing"
    SWITCHING = "switching"
    POST_SWITCH_PROBING = "post_switch_probing"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        OrchestrationState.COMMITTED,
        OrchestrationState.ROLLED_BACK,
        OrchestrationState.FAILED,
        OrchestrationState.CANCELLED,
    }
)

# States during which a cancellation request abandons the run.
CANCELLABLE_STATES = frozenset(
    {
        OrchestrationState.IDLE,
        OrchestrationState.DEPLOYING,
        OrchestrationState.PRE_SWITCH_PROBING,
    }
)


class ProbeFailure(enum.Enum):
    """Reason a probe attempt did not pass."""

    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    UNEXPECTED_RESPONSE = "unexpected_response"
    ERROR_STATUS = "error_status"
    WINDOW_EXPIRED = "window_expired"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ProbeConfig:
    """How a slot is probed and what counts as a healthy verdict.

    ``success_threshold`` consecutive passing attempts are required; a
    failing attempt resets the streak. ``observation_window_seconds`` bounds
    the whole probe run when set (used after the switch); running out of
    window yields an unhealthy verdict exactly like running out of attempts.
    """

    path: str = "/healthz"
    expected_statuses: Tuple[int, ...] = (200,)
    response_predicate: Optional[Callable[..., bool]] = None
    timeout_seconds: float = 3.0
    interval_seconds: float = 5.0
    initial_delay_seconds: float = 5.0
    max_attempts: int = 10
    success_threshold: int = 1
    observation_window_seconds: Optional[float] = None
    max_parallel_checks: int = 8

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be at least 1")
        if self.success_threshold > self.max_attempts:
            raise ValueError("success_threshold cannot exceed max_attempts")


@dataclass(frozen=True)
class RolloutParams:
    """Workload and gating parameters for one deployment request."""

    replicas: int = 2
    cpu_limit: Optional[str] = None
    memory_limit: Optional[str] = None
    deploy_timeout_seconds: float = 300.0
    readiness_poll_seconds: float = 5.0
    health_check_timeout_seconds: Optional[float] = None
    max_probe_attempts: Optional[int] = None
    values: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.replicas < 1:
            raise ValueError("replicas must be at least 1")
        if self.deploy_timeout_seconds <= 0:
            raise ValueError("deploy_timeout_seconds must be positive")

    def resource_limits(self) -> Dict[str, str]:
        limits = {}
        if self.cpu_limit:
            limits["cpu"] = self.cpu_limit
        if self.memory_limit:
            limits["memory"] = self.memory_limit
        return limits


@dataclass
class DeploymentConfig:
    """Controller-wide deployment configuration with sensible defaults."""

    application: str = "app"
    route_name: str = "app"
    pre_switch_probe: ProbeConfig = field(default_factory=ProbeConfig)
    post_switch_probe: ProbeConfig = field(
        default_factory=lambda: ProbeConfig(
            initial_delay_seconds=0.0,
            interval_seconds=5.0,
            max_attempts=12,
            success_threshold=3,
            observation_window_seconds=60.0,
        )
    )
    default_rollout: RolloutParams = field(default_factory=RolloutParams)
    record_history_limit: int = 1000
    run_history_limit: int = 200
