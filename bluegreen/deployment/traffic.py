"""Blue/Green Deployment Controller — Traffic Switch."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .backends import RoutingBackend
from .config import HealthStatus, SlotId
from .errors import InvalidTransition, SwitchError
from .records import RecordEvent, RolloutLog, RolloutRecord
from .registry import EnvironmentRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrafficRoute:
    """Where a stable route currently sends traffic."""

    route_name: str
    slot_id: SlotId
    endpoint: str
    generation: int = 0
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "route_name": self.route_name,
            "slot": self.slot_id.value,
            "endpoint": self.endpoint,
            "generation": self.generation,
            "updated_at": self.updated_at.isoformat(),
        }


class TrafficSwitch:
    """Moves the route between slots, all-or-nothing.

    The backend update and the registry's active flag change happen while
    the registry transaction lock is held, so no other mutation can observe
    the route and the registry disagreeing.
    """

    def __init__(
        self,
        backend: RoutingBackend,
        registry: EnvironmentRegistry,
        records: RolloutLog,
        route_name: str,
        application: str = "",
    ):
        self._backend = backend
        self._registry = registry
        self._records = records
        self._application = application
        active = registry.get_active()
        self._route = TrafficRoute(route_name, active.slot_id, active.endpoint)
        self._lock = threading.Lock()

    @property
    def route(self) -> TrafficRoute:
        with self._lock:
            return self._route

    @property
    def route_name(self) -> str:
        return self._route.route_name

    def sync(self) -> TrafficRoute:
        """Point the backend at whatever the registry says is active."""
        with self._registry.transaction():
            active = self._registry.get_active()
            self._backend.set_target(self.route_name, active.slot_id, active.endpoint)
            return self._publish(active.slot_id, active.endpoint)

    def switch_to(
        self,
        slot_id: SlotId,
        run_id: Optional[str] = None,
    ) -> TrafficRoute:
        """Send all traffic to ``slot_id``.

        Raises:
            InvalidTransition: the slot is already active or not HEALTHY.
            SwitchError: the backend or registry update failed; the route is
                left on the previous slot unless ``route_consistent`` is False.
        """
        slot_id = SlotId(slot_id)
        with self._registry.transaction():
            target = self._registry.get(slot_id)
            if target.is_active:
                raise InvalidTransition(
                    f"Slot {slot_id.value} is already active",
                    {"slot": slot_id.value},
                )
            if target.health != HealthStatus.HEALTHY:
                raise InvalidTransition(
                    f"Cannot switch to {slot_id.value}: health is {target.health.value}",
                    {"slot": slot_id.value, "health": target.health.value},
                )
            previous = self._registry.get_active()

            try:
                self._backend.set_target(self.route_name, slot_id, target.endpoint)
            except Exception as exc:
                raise SwitchError(
                    f"Routing backend rejected switch to {slot_id.value}: {exc}"
                ) from exc

            try:
                self._registry.set_active(slot_id)
            except Exception as exc:
                logger.error(
                    "Registry refused %s after route update, reverting route: %s",
                    slot_id.value,
                    exc,
                )
                try:
                    self._backend.set_target(
                        self.route_name, previous.slot_id, previous.endpoint
                    )
                except Exception as revert_exc:
                    raise SwitchError(
                        f"Switch to {slot_id.value} failed and route revert "
                        f"to {previous.slot_id.value} also failed: {revert_exc}",
                        route_consistent=False,
                    ) from exc
                raise SwitchError(
                    f"Switch to {slot_id.value} failed: {exc}"
                ) from exc

            route = self._publish(slot_id, target.endpoint)

        # Route already moved; the record write is best-effort.
        try:
            self._records.append(
                RolloutRecord(
                    event=RecordEvent.SWITCH,
                    application=self._application,
                    run_id=run_id,
                    version=target.current_version,
                    from_slot=previous.slot_id,
                    to_slot=slot_id,
                )
            )
        except Exception:
            logger.exception(
                "SWITCH record for %s -> %s could not be written",
                previous.slot_id.value,
                slot_id.value,
            )
        logger.info(
            "Traffic on %s switched %s -> %s",
            self.route_name,
            previous.slot_id.value,
            slot_id.value,
        )
        return route

    def point_at(self, slot_id: SlotId, endpoint: str) -> TrafficRoute:
        """Update the backend and the published route without gating.

        Only the rollback path uses this; callers must hold the registry
        transaction.
        """
        self._backend.set_target(self.route_name, slot_id, endpoint)
        return self._publish(slot_id, endpoint)

    def _publish(self, slot_id: SlotId, endpoint: str) -> TrafficRoute:
        with self._lock:
            self._route = TrafficRoute(
                route_name=self._route.route_name,
                slot_id=slot_id,
                endpoint=endpoint,
                generation=self._route.generation + 1,
            )
            return self._route
