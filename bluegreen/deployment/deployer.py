"""Blue/Green Deployment Controller — Deployer."""

import logging
import time
from typing import Callable, Optional

from bluegreen.logging_config.performance import log_performance

from .backends import WorkloadApplier, WorkloadReadiness
from .cancellation import CancellationToken, pause
from .config import RolloutParams, SlotId
from .errors import (
    ActiveSlotProtected,
    DeployError,
    DeploymentCancelled,
    DeployTimeout,
)
from .registry import EnvironmentRegistry

logger = logging.getLogger(__name__)


class Deployer:
    """Rolls a new workload version onto the standby slot.

    Never touches the active slot: the target is checked against the
    registry before anything is applied.
    """

    def __init__(
        self,
        applier: WorkloadApplier,
        registry: EnvironmentRegistry,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._applier = applier
        self._registry = registry
        self._sleep = sleep
        self._clock = clock

    @log_performance(threshold_ms=60_000)
    def deploy(
        self,
        slot_id: SlotId,
        version: str,
        params: RolloutParams,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WorkloadReadiness:
        """Apply ``version`` to ``slot_id`` and wait for replica readiness.

        Raises:
            ActiveSlotProtected: ``slot_id`` is serving live traffic.
            DeployError: the workload applier failed.
            DeployTimeout: readiness not reached within the deploy timeout.
            DeploymentCancelled: the run was cancelled while waiting.
        """
        slot_id = SlotId(slot_id)
        if self._registry.get_active().slot_id == slot_id:
            raise ActiveSlotProtected(
                f"Refusing to deploy {version} to active slot {slot_id.value}",
                {"slot": slot_id.value, "version": version},
            )

        self._registry.record_desired_version(slot_id, version)
        logger.info(
            "Deploying %s to standby slot %s (replicas=%d)",
            version,
            slot_id.value,
            params.replicas,
        )
        try:
            self._applier.apply(slot_id, version, params)
        except Exception as exc:
            raise DeployError(
                f"Applying {version} to slot {slot_id.value} failed: {exc}",
                {"slot": slot_id.value, "version": version},
            ) from exc

        readiness = self._wait_ready(slot_id, version, params, cancel_token)
        self._registry.record_version(slot_id, version)
        return readiness

    def _wait_ready(
        self,
        slot_id: SlotId,
        version: str,
        params: RolloutParams,
        cancel_token: Optional[CancellationToken],
    ) -> WorkloadReadiness:
        deadline = self._clock() + params.deploy_timeout_seconds
        readiness = WorkloadReadiness(0, params.replicas)
        while True:
            if cancel_token is not None and cancel_token.cancelled:
                raise DeploymentCancelled(
                    f"Deploy of {version} to slot {slot_id.value} cancelled"
                )
            try:
                readiness = self._applier.readiness(slot_id)
            except Exception as exc:
                raise DeployError(
                    f"Reading readiness of slot {slot_id.value} failed: {exc}",
                    {"slot": slot_id.value, "version": version},
                ) from exc
            if readiness.is_ready:
                logger.info(
                    "Slot %s ready: %d/%d replicas",
                    slot_id.value,
                    readiness.ready_replicas,
                    readiness.desired_replicas,
                )
                return readiness

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise DeployTimeout(
                    f"Slot {slot_id.value} not ready after "
                    f"{params.deploy_timeout_seconds}s "
                    f"({readiness.ready_replicas}/{readiness.desired_replicas} replicas)",
                    {
                        "slot": slot_id.value,
                        "version": version,
                        "ready_replicas": readiness.ready_replicas,
                        "desired_replicas": readiness.desired_replicas,
                    },
                )
            delay = min(params.readiness_poll_seconds, remaining)
            pause(delay, cancel_token, self._sleep)
