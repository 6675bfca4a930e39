"""Blue/Green Deployment Controller — Orchestrator.

Drives one deployment request through deploy → probe → switch → verify and
ends in COMMITTED, ROLLED_BACK, FAILED or CANCELLED. Failures before the
switch never touch traffic; failures at or after the switch always go
through the rollback controller before the run is reported.
"""

import dataclasses
import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from bluegreen.logging_config.context import DeploymentContext
from bluegreen.logging_config.performance import PerformanceTimer

from .cancellation import CancellationToken
from .config import (
    CANCELLABLE_STATES,
    DeploymentConfig,
    HealthStatus,
    OrchestrationState,
    ProbeConfig,
    ProbeFailure,
    RolloutParams,
    SlotId,
)
from .deployer import Deployer
from .errors import (
    ActiveSlotProtected,
    DeploymentCancelled,
    DeploymentControllerError,
    HealthCheckFailed,
    RollbackError,
    RunNotFound,
    SlotBusy,
    SwitchError,
)
from .health import HealthProber, HealthVerdict
from .records import RecordEvent, RolloutLog, RolloutOutcome, RolloutRecord
from .registry import EnvironmentRegistry
from .rollback import RollbackController
from .traffic import TrafficSwitch

logger = logging.getLogger(__name__)

_S = OrchestrationState

ALLOWED_TRANSITIONS: Dict[OrchestrationState, frozenset] = {
    _S.IDLE: frozenset({_S.DEPLOYING, _S.CANCELLED}),
    _S.DEPLOYING: frozenset({_S.PRE_SWITCH_PROBING, _S.FAILED, _S.CANCELLED}),
    _S.PRE_SWITCH_PROBING: frozenset({_S.SWITCHING, _S.FAILED, _S.CANCELLED}),
    _S.SWITCHING: frozenset({_S.POST_SWITCH_PROBING, _S.ROLLING_BACK}),
    _S.POST_SWITCH_PROBING: frozenset({_S.COMMITTED, _S.ROLLING_BACK}),
    _S.ROLLING_BACK: frozenset({_S.ROLLED_BACK, _S.FAILED}),
}

# Traffic may already be on the target; leaving these goes through rollback.
_SWITCHED_STATES = frozenset({_S.SWITCHING, _S.POST_SWITCH_PROBING})

_OUTCOMES = {
    _S.COMMITTED: RolloutOutcome.COMMITTED,
    _S.ROLLED_BACK: RolloutOutcome.ROLLED_BACK,
    _S.FAILED: RolloutOutcome.FAILED,
    _S.CANCELLED: RolloutOutcome.CANCELLED,
}


@dataclass(frozen=True)
class DeploymentRequest:
    """An accepted request to roll ``version`` onto ``target_slot``."""

    version: str
    target_slot: SlotId
    params: RolloutParams = field(default_factory=RolloutParams)
    application: str = ""
    requested_by: str = "system"
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    requested_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class StateTransition:
    from_state: OrchestrationState
    to_state: OrchestrationState
    reason: str = ""
    at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class OrchestrationRun:
    """Live and historical view of one orchestration attempt."""

    request: DeploymentRequest
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: OrchestrationState = OrchestrationState.IDLE
    transitions: List[StateTransition] = field(default_factory=list)
    verdicts: Dict[str, HealthVerdict] = field(default_factory=dict)
    timings_ms: Dict[str, float] = field(default_factory=dict)
    error: Optional[DeploymentControllerError] = None
    cancel_requested: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancel_token: CancellationToken = field(default_factory=CancellationToken, repr=False)
    done: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def succeeded(self) -> bool:
        return self.state == OrchestrationState.COMMITTED

    @property
    def failure_reason(self) -> Optional[str]:
        return self.error.message if self.error is not None else None

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "application": self.request.application,
            "version": self.request.version,
            "target_slot": self.request.target_slot.value,
            "requested_by": self.request.requested_by,
            "state": self.state.value,
            "cancel_requested": self.cancel_requested,
            "error": self.error.to_dict() if self.error is not None else None,
            "transitions": [
                {
                    "from": t.from_state.value,
                    "to": t.to_state.value,
                    "reason": t.reason,
                    "at": t.at.isoformat(),
                }
                for t in self.transitions
            ],
            "verdicts": {k: v.to_dict() for k, v in self.verdicts.items()},
            "timings_ms": dict(self.timings_ms),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class DeploymentOrchestrator:
    """Runs blue/green deployments for one application, one at a time."""

    def __init__(
        self,
        registry: EnvironmentRegistry,
        deployer: Deployer,
        prober: HealthProber,
        switch: TrafficSwitch,
        rollback: RollbackController,
        records: RolloutLog,
        config: Optional[DeploymentConfig] = None,
        store=None,
    ):
        self._config = config or DeploymentConfig()
        self._store = store
        self._registry = registry
        self._deployer = deployer
        self._prober = prober
        self._switch = switch
        self._rollback = rollback
        self._records = records
        self._runs: "OrderedDict[str, OrchestrationRun]" = OrderedDict()
        self._in_flight: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def config(self) -> DeploymentConfig:
        return self._config

    @property
    def registry(self) -> EnvironmentRegistry:
        return self._registry

    @property
    def switch(self) -> TrafficSwitch:
        return self._switch

    @property
    def records(self) -> RolloutLog:
        return self._records

    @property
    def in_flight(self) -> Optional[OrchestrationRun]:
        with self._lock:
            return self._runs.get(self._in_flight) if self._in_flight else None

    # ── Trigger entry points ─────────────────────────────────────────

    def build_request(
        self,
        version: str,
        target_slot: Optional[SlotId] = None,
        params: Optional[RolloutParams] = None,
        requested_by: str = "system",
    ) -> DeploymentRequest:
        """Build a request, defaulting the target to the current standby."""
        if target_slot is None:
            target_slot = self._registry.get_standby().slot_id
        return DeploymentRequest(
            version=version,
            target_slot=SlotId(target_slot),
            params=params or self._config.default_rollout,
            application=self._config.application,
            requested_by=requested_by,
        )

    def run(
        self,
        request: DeploymentRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OrchestrationRun:
        """Accept ``request`` and drive it to a terminal state.

        Raises:
            SlotBusy: another run is in flight.
            ActiveSlotProtected: the request targets the active slot.
        """
        run = self._accept(request, cancel_token)
        self._execute(run)
        return run

    def submit(
        self,
        request: DeploymentRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OrchestrationRun:
        """Accept ``request`` synchronously and drive it on a worker thread."""
        run = self._accept(request, cancel_token)
        worker = threading.Thread(
            target=self._execute,
            args=(run,),
            name=f"bluegreen-run-{run.run_id[:8]}",
            daemon=True,
        )
        worker.start()
        return run

    def wait(self, run_id: str, timeout: Optional[float] = None) -> OrchestrationRun:
        run = self.get_run(run_id)
        run.done.wait(timeout)
        return run

    def cancel(self, run_id: str, reason: str = "cancelled by operator") -> OrchestrationRun:
        """Request cancellation of a run.

        Honored while deploying or probing before the switch. Once traffic
        starts moving the request is recorded but the run finishes through
        its own commit or rollback path.
        """
        run = self.get_run(run_id)
        if run.is_terminal:
            return run
        run.cancel_requested = True
        if run.state in CANCELLABLE_STATES:
            logger.info("Cancelling run %s: %s", run_id, reason)
            run.cancel_token.cancel(reason)
        else:
            logger.warning(
                "Cancellation of run %s deferred: traffic switch in progress (%s)",
                run_id,
                run.state.value,
            )
        return run

    # ── Queries ──────────────────────────────────────────────────────

    def get_run(self, run_id: str) -> OrchestrationRun:
        with self._lock:
            run = self._runs.get(run_id)
        if run is None:
            raise RunNotFound(f"Run {run_id} not found", {"run_id": run_id})
        return run

    def list_runs(self, limit: int = 20) -> List[OrchestrationRun]:
        """Most recent runs first."""
        with self._lock:
            runs = list(self._runs.values())
        runs.reverse()
        return runs[:limit]

    def get_summary(self) -> dict:
        with self._lock:
            runs = list(self._runs.values())
            in_flight = self._in_flight
        counts = {state.value: 0 for state in _OUTCOMES}
        for run in runs:
            if run.state in _OUTCOMES:
                counts[run.state.value] += 1
        completed = sum(counts.values())
        active = self._registry.get_active()
        return {
            "application": self._config.application,
            "total": len(runs),
            **counts,
            "success_rate": round(counts["committed"] / completed, 4) if completed else 0.0,
            "active_slot": active.slot_id.value,
            "active_version": active.current_version,
            "in_flight": in_flight,
        }

    # ── State machine ────────────────────────────────────────────────

    def _accept(
        self,
        request: DeploymentRequest,
        cancel_token: Optional[CancellationToken],
    ) -> OrchestrationRun:
        with self._lock:
            if self._in_flight is not None:
                raise SlotBusy(
                    f"Run {self._in_flight} is already in flight for "
                    f"{self._config.application}",
                    {"in_flight": self._in_flight},
                )
            active = self._registry.get_active()
            if request.target_slot == active.slot_id:
                raise ActiveSlotProtected(
                    f"Slot {active.slot_id.value} is serving live traffic",
                    {"slot": active.slot_id.value, "version": request.version},
                )
            run = OrchestrationRun(request=request)
            if cancel_token is not None:
                run.cancel_token = cancel_token
            self._runs[run.run_id] = run
            self._in_flight = run.run_id
            self._trim_runs()
        logger.info(
            "Accepted run %s: %s -> slot %s (requested by %s)",
            run.run_id,
            request.version,
            request.target_slot.value,
            request.requested_by,
        )
        return run

    def _execute(self, run: OrchestrationRun) -> None:
        request = run.request
        run.started_at = datetime.utcnow()
        try:
            with DeploymentContext(
                run_id=run.run_id,
                application=request.application,
                slot=request.target_slot.value,
            ):
                self._drive(run)
        except Exception as exc:
            logger.exception("Run %s aborted by unexpected error", run.run_id)
            if not run.is_terminal:
                error = DeploymentControllerError(f"Unexpected error: {exc}")
                if run.state in _SWITCHED_STATES:
                    self._roll_back(run, error)
                else:
                    run.error = error
                    self._force_failed(run, str(exc))
            raise
        finally:
            with self._lock:
                if self._in_flight == run.run_id:
                    self._in_flight = None
            run.done.set()

    def _drive(self, run: OrchestrationRun) -> None:
        request = run.request
        token = run.cancel_token
        slot_id = request.target_slot

        # Deploying
        self._transition(run, _S.DEPLOYING)
        try:
            if token.cancelled:
                raise DeploymentCancelled(token.reason or "cancelled before deploy")
            with PerformanceTimer("deploy", timings=run.timings_ms):
                self._deployer.deploy(slot_id, request.version, request.params, cancel_token=token)
        except DeploymentCancelled as exc:
            self._abandon(run, exc)
            return
        except DeploymentControllerError as exc:
            self._registry.record_health(slot_id, HealthStatus.UNHEALTHY)
            self._finish(run, _S.FAILED, exc)
            return

        # Pre-switch probing
        self._transition(run, _S.PRE_SWITCH_PROBING)
        with PerformanceTimer("pre_switch_probe", timings=run.timings_ms):
            verdict = self._prober.probe(
                self._registry.get(slot_id),
                self._pre_switch_config(request.params),
                cancel_token=token,
            )
        run.verdicts["pre_switch"] = verdict
        if verdict.failure == ProbeFailure.CANCELLED or token.cancelled:
            self._abandon(run, DeploymentCancelled(token.reason or "cancelled while probing"))
            return
        if not verdict.healthy:
            self._finish(
                run,
                _S.FAILED,
                HealthCheckFailed(
                    f"Slot {slot_id.value} failed pre-switch probing: {verdict.reason}",
                    verdict,
                ),
            )
            return

        # Switching. Cancellation is deferred from here on.
        self._transition(run, _S.SWITCHING)
        try:
            self._switch.switch_to(slot_id, run_id=run.run_id)
        except DeploymentControllerError as exc:
            self._roll_back(run, exc)
            return
        except Exception as exc:
            logger.exception("Switch to %s raised unexpectedly", slot_id.value)
            self._roll_back(
                run,
                SwitchError(
                    f"Unexpected error switching to {slot_id.value}: {exc}",
                    route_consistent=False,
                ),
            )
            return

        # Post-switch probing
        self._transition(run, _S.POST_SWITCH_PROBING)
        try:
            with PerformanceTimer("post_switch_probe", timings=run.timings_ms):
                verdict = self._prober.probe(
                    self._registry.get(slot_id),
                    self._config.post_switch_probe,
                )
        except Exception as exc:
            logger.exception("Post-switch health check of %s raised", slot_id.value)
            self._roll_back(
                run,
                HealthCheckFailed(
                    f"Slot {slot_id.value} could not be verified after switch: {exc}"
                ),
            )
            return
        run.verdicts["post_switch"] = verdict
        if not verdict.healthy:
            self._roll_back(
                run,
                HealthCheckFailed(
                    f"Slot {slot_id.value} regressed after switch: {verdict.reason}",
                    verdict,
                ),
            )
            return

        self._finish(run, _S.COMMITTED)

    def _roll_back(self, run: OrchestrationRun, cause: DeploymentControllerError) -> None:
        self._transition(run, _S.ROLLING_BACK, cause.message)
        try:
            self._rollback.rollback(
                run.request.target_slot,
                reason=cause.message,
                run_id=run.run_id,
                version=run.request.version,
            )
        except RollbackError as exc:
            self._rollback_failed(run, cause, exc)
            return
        except Exception as exc:
            logger.exception("Rollback of run %s raised unexpectedly", run.run_id)
            self._rollback_failed(
                run, cause, RollbackError(f"Unexpected error during rollback: {exc}")
            )
            return
        self._finish(run, _S.ROLLED_BACK, cause)

    def _rollback_failed(
        self,
        run: OrchestrationRun,
        cause: DeploymentControllerError,
        exc: RollbackError,
    ) -> None:
        logger.critical(
            "Rollback of run %s failed, manual intervention required: %s",
            run.run_id,
            exc.message,
        )
        exc.details.setdefault("cause", cause.message)
        self._finish(run, _S.FAILED, exc)

    def _abandon(self, run: OrchestrationRun, exc: DeploymentCancelled) -> None:
        # Whatever reached the standby is unverified.
        self._registry.record_health(run.request.target_slot, HealthStatus.UNHEALTHY)
        self._finish(run, _S.CANCELLED, exc)

    def _finish(
        self,
        run: OrchestrationRun,
        state: OrchestrationState,
        error: Optional[DeploymentControllerError] = None,
    ) -> None:
        run.error = error
        self._transition(run, state, error.message if error is not None else "")
        run.completed_at = datetime.utcnow()
        self._record_outcome(run)
        self._persist_slots()
        if state == _S.COMMITTED:
            logger.info(
                "Run %s committed: %s live on slot %s",
                run.run_id,
                run.request.version,
                run.request.target_slot.value,
            )
        else:
            logger.warning(
                "Run %s ended %s: %s",
                run.run_id,
                state.value,
                run.failure_reason,
            )

    def _force_failed(self, run: OrchestrationRun, reason: str) -> None:
        run.transitions.append(StateTransition(run.state, _S.FAILED, reason))
        run.state = _S.FAILED
        run.completed_at = datetime.utcnow()
        self._record_outcome(run)
        self._persist_slots()

    def _trim_runs(self) -> None:
        # Caller holds self._lock. Oldest runs go first; the in-flight run stays.
        limit = self._config.run_history_limit
        if not limit:
            return
        for run_id in list(self._runs):
            if len(self._runs) <= limit:
                break
            if run_id != self._in_flight:
                del self._runs[run_id]

    def _persist_slots(self) -> None:
        if self._store is not None:
            self._store.save_slots(self._registry.snapshot())

    def _record_outcome(self, run: OrchestrationRun) -> None:
        self._records.append(
            RolloutRecord(
                event=RecordEvent.OUTCOME,
                application=run.request.application,
                run_id=run.run_id,
                version=run.request.version,
                from_slot=run.request.target_slot.other,
                to_slot=run.request.target_slot,
                outcome=_OUTCOMES[run.state],
                failure_reason=run.failure_reason,
                error_code=run.error.error_code.value if run.error is not None else None,
            )
        )

    def _transition(
        self,
        run: OrchestrationRun,
        to_state: OrchestrationState,
        reason: str = "",
    ) -> None:
        allowed = ALLOWED_TRANSITIONS.get(run.state, frozenset())
        if to_state not in allowed:
            raise RuntimeError(
                f"Illegal transition {run.state.value} -> {to_state.value}"
            )
        run.transitions.append(StateTransition(run.state, to_state, reason))
        logger.info(
            "Run %s: %s -> %s%s",
            run.run_id,
            run.state.value,
            to_state.value,
            f" ({reason})" if reason else "",
            extra={
                "from_state": run.state.value,
                "to_state": to_state.value,
                "version": run.request.version,
            },
        )
        run.state = to_state

    def _pre_switch_config(self, params: RolloutParams) -> ProbeConfig:
        base = self._config.pre_switch_probe
        overrides = {}
        if params.health_check_timeout_seconds is not None:
            overrides["timeout_seconds"] = params.health_check_timeout_seconds
        if params.max_probe_attempts is not None:
            overrides["max_attempts"] = params.max_probe_attempts
            overrides["success_threshold"] = min(base.success_threshold, params.max_probe_attempts)
        return dataclasses.replace(base, **overrides) if overrides else base
