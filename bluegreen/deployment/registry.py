"""Blue/Green Deployment Controller — Environment Registry.

Single source of truth for slot state. Exactly one slot is active at any
time; every mutation is serialized through one re-entrant lock, which
``transaction()`` exposes so a route update and an activity change can be
made as one logical step.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from .config import HealthStatus, SlotActivity, SlotId
from .errors import InvalidTransition

logger = logging.getLogger(__name__)


@dataclass
class EnvironmentSlot:
    """One of the two parallel environments."""

    slot_id: SlotId
    endpoint: str = ""
    replica_endpoints: List[str] = field(default_factory=list)
    current_version: Optional[str] = None
    desired_version: Optional[str] = None
    health: HealthStatus = HealthStatus.UNKNOWN
    activity: SlotActivity = SlotActivity.STANDBY
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        return self.activity == SlotActivity.ACTIVE

    @property
    def probe_targets(self) -> List[str]:
        """Base URLs a health probe should hit for this slot."""
        return list(self.replica_endpoints) or [self.endpoint]

    def to_dict(self) -> dict:
        return {
            "slot_id": self.slot_id.value,
            "endpoint": self.endpoint,
            "replica_endpoints": list(self.replica_endpoints),
            "current_version": self.current_version,
            "desired_version": self.desired_version,
            "health": self.health.value,
            "activity": self.activity.value,
            "updated_at": self.updated_at.isoformat(),
        }


class EnvironmentRegistry:
    """Tracks both slots and which one is serving traffic."""

    def __init__(self, slots: Dict[SlotId, EnvironmentSlot]):
        if set(slots) != set(SlotId):
            raise ValueError("registry requires exactly one blue and one green slot")
        active = [s for s in slots.values() if s.is_active]
        if len(active) != 1:
            raise ValueError(
                f"exactly one slot must be active, got {len(active)}"
            )
        self._slots = slots
        self._lock = threading.RLock()

    @classmethod
    def bootstrap(
        cls,
        active: SlotId = SlotId.BLUE,
        endpoints: Optional[Dict[SlotId, str]] = None,
        versions: Optional[Dict[SlotId, str]] = None,
        replica_endpoints: Optional[Dict[SlotId, List[str]]] = None,
        active_health: HealthStatus = HealthStatus.HEALTHY,
    ) -> "EnvironmentRegistry":
        """Create both slots with ``active`` serving traffic.

        The active slot is assumed to be serving live traffic already, so
        its health defaults to HEALTHY; the standby starts UNKNOWN.
        """
        endpoints = endpoints or {}
        versions = versions or {}
        replica_endpoints = replica_endpoints or {}
        slots = {}
        for slot_id in SlotId:
            is_active = slot_id == active
            slots[slot_id] = EnvironmentSlot(
                slot_id=slot_id,
                endpoint=endpoints.get(slot_id, ""),
                replica_endpoints=list(replica_endpoints.get(slot_id, [])),
                current_version=versions.get(slot_id),
                desired_version=versions.get(slot_id),
                health=active_health if is_active else HealthStatus.UNKNOWN,
                activity=SlotActivity.ACTIVE if is_active else SlotActivity.STANDBY,
            )
        logger.info("Registry bootstrapped with %s active", active.value)
        return cls(slots)

    # ── Queries ──────────────────────────────────────────────────────

    def get(self, slot_id: SlotId) -> EnvironmentSlot:
        """Return a copy of the slot's current state."""
        with self._lock:
            return copy.deepcopy(self._slots[SlotId(slot_id)])

    def get_active(self) -> EnvironmentSlot:
        with self._lock:
            return copy.deepcopy(self._active_slot())

    def get_standby(self) -> EnvironmentSlot:
        with self._lock:
            return copy.deepcopy(self._slots[self._active_slot().slot_id.other])

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._slots.values() if s.is_active)

    def snapshot(self) -> List[dict]:
        """Serializable view of both slots, blue first."""
        with self._lock:
            return [self._slots[slot_id].to_dict() for slot_id in SlotId]

    # ── Mutations ────────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator["EnvironmentRegistry"]:
        """Hold the mutation lock across several registry operations."""
        with self._lock:
            yield self

    def set_active(self, slot_id: SlotId) -> EnvironmentSlot:
        """Make ``slot_id`` the active slot and the other one standby.

        Raises:
            InvalidTransition: the slot is already active, or it is not
                HEALTHY. State is left untouched in both cases.
        """
        slot_id = SlotId(slot_id)
        with self._lock:
            target = self._slots[slot_id]
            if target.is_active:
                raise InvalidTransition(
                    f"Slot {slot_id.value} is already active",
                    {"slot": slot_id.value},
                )
            if target.health != HealthStatus.HEALTHY:
                raise InvalidTransition(
                    f"Slot {slot_id.value} is {target.health.value}, not healthy",
                    {"slot": slot_id.value, "health": target.health.value},
                )
            now = datetime.utcnow()
            previous = self._slots[slot_id.other]
            previous.activity = SlotActivity.STANDBY
            previous.updated_at = now
            target.activity = SlotActivity.ACTIVE
            target.updated_at = now
            logger.info(
                "Active slot changed: %s -> %s",
                previous.slot_id.value,
                slot_id.value,
            )
            return copy.deepcopy(target)

    def record_desired_version(self, slot_id: SlotId, version: str) -> None:
        with self._lock:
            slot = self._slots[SlotId(slot_id)]
            slot.desired_version = version
            slot.updated_at = datetime.utcnow()

    def record_version(self, slot_id: SlotId, version: str) -> None:
        """Record the workload version now running in a slot.

        A slot whose workload changed has not been probed yet, so its
        health drops back to UNKNOWN.
        """
        with self._lock:
            slot = self._slots[SlotId(slot_id)]
            if slot.current_version != version:
                slot.health = HealthStatus.UNKNOWN
            slot.current_version = version
            slot.desired_version = version
            slot.updated_at = datetime.utcnow()
            logger.info(
                "Slot %s now runs version %s", slot.slot_id.value, version
            )

    def record_health(self, slot_id: SlotId, health: HealthStatus) -> None:
        with self._lock:
            slot = self._slots[SlotId(slot_id)]
            if slot.health != health:
                logger.info(
                    "Slot %s health: %s -> %s",
                    slot.slot_id.value,
                    slot.health.value,
                    health.value,
                )
            slot.health = health
            slot.updated_at = datetime.utcnow()

    def restore(self, rows: List[dict]) -> None:
        """Load slot state previously produced by ``snapshot()``."""
        by_id = {SlotId(row["slot_id"]): row for row in rows}
        if set(by_id) != set(SlotId):
            raise ValueError("snapshot must contain both slots")
        active = [r for r in by_id.values() if r["activity"] == SlotActivity.ACTIVE.value]
        if len(active) != 1:
            raise ValueError("snapshot must contain exactly one active slot")
        with self._lock:
            for slot_id, row in by_id.items():
                slot = self._slots[slot_id]
                slot.current_version = row.get("current_version")
                slot.desired_version = row.get("desired_version")
                slot.health = HealthStatus(row.get("health", HealthStatus.UNKNOWN.value))
                slot.activity = SlotActivity(row["activity"])
                if row.get("endpoint"):
                    slot.endpoint = row["endpoint"]
                slot.updated_at = datetime.utcnow()
            logger.info("Registry restored from snapshot")

    # ── Internal helpers ─────────────────────────────────────────────

    def _active_slot(self) -> EnvironmentSlot:
        for slot in self._slots.values():
            if slot.is_active:
                return slot
        raise RuntimeError("registry has no active slot")
