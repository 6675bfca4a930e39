"""Blue/Green Deployment Controller — External Collaborator Contracts.

The controller only talks to the outside world through these three
interfaces. In-memory implementations are provided for dry runs and tests;
Kubernetes-backed ones live in ``kube`` and the HTTP checker in ``checkers``.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from .config import RolloutParams, SlotId

logger = logging.getLogger(__name__)


@dataclass
class WorkloadReadiness:
    """Replica readiness reported by the workload layer."""

    ready_replicas: int = 0
    desired_replicas: int = 0
    message: str = ""

    @property
    def is_ready(self) -> bool:
        return self.desired_replicas > 0 and self.ready_replicas >= self.desired_replicas


@dataclass
class CheckResult:
    """Outcome of a single endpoint check.

    ``error_kind`` is one of "timeout", "connection" or "error" when the
    request did not produce a response.
    """

    url: str
    status_code: Optional[int] = None
    latency_ms: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[str] = None
    body: str = ""


class WorkloadApplier(ABC):
    """Applies a workload spec to a slot and reports its readiness."""

    @abstractmethod
    def apply(self, slot_id: SlotId, version: str, params: RolloutParams) -> None:
        ...

    @abstractmethod
    def readiness(self, slot_id: SlotId) -> WorkloadReadiness:
        ...


class RoutingBackend(ABC):
    """Points a stable route at one slot's endpoint."""

    @abstractmethod
    def set_target(self, route_name: str, slot_id: SlotId, endpoint: str) -> None:
        ...


class EndpointChecker(ABC):
    """Performs one health request against a URL."""

    @abstractmethod
    def check(self, url: str, timeout: float) -> CheckResult:
        ...


# ── In-memory implementations ────────────────────────────────────────


@dataclass
class AppliedWorkload:
    slot_id: SlotId
    version: str
    params: RolloutParams
    applied_at: datetime = field(default_factory=datetime.utcnow)


class InMemoryWorkloadApplier(WorkloadApplier):
    """Simulated workload layer.

    Workloads become ready after ``ready_after_polls`` readiness calls.
    ``fail_with`` makes the next ``apply`` raise that exception.
    """

    def __init__(self, ready_after_polls: int = 0):
        self.ready_after_polls = ready_after_polls
        self.fail_with: Optional[Exception] = None
        self.never_ready = False
        self.applied: List[AppliedWorkload] = []
        self._polls: Dict[SlotId, int] = {}
        self._desired: Dict[SlotId, int] = {}
        self._lock = threading.Lock()

    def apply(self, slot_id: SlotId, version: str, params: RolloutParams) -> None:
        with self._lock:
            if self.fail_with is not None:
                exc, self.fail_with = self.fail_with, None
                raise exc
            self.applied.append(AppliedWorkload(slot_id, version, params))
            self._polls[slot_id] = 0
            self._desired[slot_id] = params.replicas
            logger.info(
                "Applied %s to slot %s (%d replicas)",
                version,
                slot_id.value,
                params.replicas,
            )

    def readiness(self, slot_id: SlotId) -> WorkloadReadiness:
        with self._lock:
            desired = self._desired.get(slot_id, 0)
            polls = self._polls.get(slot_id, 0)
            self._polls[slot_id] = polls + 1
            if self.never_ready or polls < self.ready_after_polls:
                return WorkloadReadiness(0, desired, "replicas starting")
            return WorkloadReadiness(desired, desired, "all replicas ready")


class InMemoryRoutingBackend(RoutingBackend):
    """Simulated load balancer / ingress.

    ``fail_next`` makes the next N ``set_target`` calls raise.
    """

    def __init__(self, initial: Optional[Dict[str, Tuple[SlotId, str]]] = None):
        self.targets: Dict[str, Tuple[SlotId, str]] = dict(initial or {})
        self.history: List[Tuple[str, SlotId, str]] = []
        self.fail_next = 0
        self._lock = threading.Lock()

    def set_target(self, route_name: str, slot_id: SlotId, endpoint: str) -> None:
        with self._lock:
            if self.fail_next > 0:
                self.fail_next -= 1
                raise ConnectionError(f"routing backend unavailable for {route_name}")
            self.targets[route_name] = (slot_id, endpoint)
            self.history.append((route_name, slot_id, endpoint))

    def target_of(self, route_name: str) -> Optional[SlotId]:
        with self._lock:
            entry = self.targets.get(route_name)
        return entry[0] if entry else None


class StaticEndpointChecker(EndpointChecker):
    """Checker answering from a script instead of the network.

    ``responder`` maps a URL to a CheckResult. Without one, URLs listed in
    ``failing`` return 503 and everything else 200.
    """

    def __init__(self, responder: Optional[Callable[[str], CheckResult]] = None):
        self.responder = responder
        self.failing: set = set()
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def check(self, url: str, timeout: float) -> CheckResult:
        with self._lock:
            self.calls.append(url)
        if self.responder is not None:
            return self.responder(url)
        if any(url.startswith(prefix) for prefix in self.failing):
            return CheckResult(url=url, status_code=503, body="unavailable")
        return CheckResult(url=url, status_code=200, body="ok")
