"""Blue/Green Deployment Controller — Rollback Controller."""

import logging
import threading
from typing import Dict, List, Optional

from .config import HealthStatus, SlotId
from .errors import RollbackError
from .records import RecordEvent, RolloutLog, RolloutRecord
from .registry import EnvironmentRegistry
from .traffic import TrafficRoute, TrafficSwitch

logger = logging.getLogger(__name__)


class RollbackController:
    """Returns traffic to the last known-good slot.

    The revert target is taken from the SWITCH record that moved traffic
    onto the failed slot. The failed slot is always marked UNHEALTHY, which
    keeps it from being switched to again until a fresh probe passes.
    """

    def __init__(
        self,
        switch: TrafficSwitch,
        registry: EnvironmentRegistry,
        records: RolloutLog,
        application: str = "",
    ):
        self._switch = switch
        self._registry = registry
        self._records = records
        self._application = application
        self._history: List[Dict] = []
        self._lock = threading.Lock()

    def rollback(
        self,
        from_slot: SlotId,
        reason: str = "",
        run_id: Optional[str] = None,
        version: Optional[str] = None,
    ) -> TrafficRoute:
        """Move traffic off ``from_slot`` and disqualify it.

        Raises:
            RollbackError: the route or the registry could not be restored.
        """
        from_slot = SlotId(from_slot)
        logger.warning(
            "Rolling back from slot %s (reason: %s)", from_slot.value, reason or "-"
        )
        with self._registry.transaction():
            failed = self._registry.get(from_slot)
            self._registry.record_health(from_slot, HealthStatus.UNHEALTHY)

            if failed.is_active:
                target_id = self._revert_target(from_slot)
                target = self._registry.get(target_id)
                try:
                    self._switch.point_at(target_id, target.endpoint)
                except Exception as exc:
                    raise RollbackError(
                        f"Could not route traffic back to {target_id.value}: {exc}",
                        {"from_slot": from_slot.value, "to_slot": target_id.value},
                    ) from exc
                try:
                    self._registry.set_active(target_id)
                except Exception as exc:
                    self._restore_route(from_slot, failed.endpoint)
                    raise RollbackError(
                        f"Registry refused to reactivate {target_id.value}: {exc}",
                        {"from_slot": from_slot.value, "to_slot": target_id.value},
                    ) from exc
            else:
                # The switch never committed; make sure the backend agrees
                # with the registry again.
                target = self._registry.get_active()
                target_id = target.slot_id
                try:
                    self._switch.point_at(target_id, target.endpoint)
                except Exception as exc:
                    raise RollbackError(
                        f"Could not re-assert route on {target_id.value}: {exc}",
                        {"from_slot": from_slot.value, "to_slot": target_id.value},
                    ) from exc
            route = self._switch.route

        try:
            self._records.append(
                RolloutRecord(
                    event=RecordEvent.ROLLBACK,
                    application=self._application,
                    run_id=run_id,
                    version=version,
                    from_slot=from_slot,
                    to_slot=target_id,
                    failure_reason=reason or None,
                )
            )
        except Exception:
            logger.exception(
                "ROLLBACK record for %s -> %s could not be written",
                from_slot.value,
                target_id.value,
            )
        with self._lock:
            self._history.append(
                {
                    "run_id": run_id,
                    "from_slot": from_slot.value,
                    "to_slot": target_id.value,
                    "reason": reason,
                }
            )
        logger.info(
            "Rollback complete: traffic on %s restored to %s",
            route.route_name,
            target_id.value,
        )
        return route

    def get_rollback_stats(self) -> dict:
        with self._lock:
            return {"total": len(self._history), "history": list(self._history)}

    # ── Internal helpers ─────────────────────────────────────────────

    def _revert_target(self, from_slot: SlotId) -> SlotId:
        record = self._records.latest_switch_to(from_slot)
        if record is not None and record.from_slot is not None:
            return record.from_slot
        return from_slot.other

    def _restore_route(self, slot_id: SlotId, endpoint: str) -> None:
        try:
            self._switch.point_at(slot_id, endpoint)
        except Exception:
            logger.exception(
                "Route could not be restored to %s; manual intervention required",
                slot_id.value,
            )
