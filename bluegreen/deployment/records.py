"""Blue/Green Deployment Controller — Rollout Records."""

import enum
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .config import SlotId

logger = logging.getLogger(__name__)


class RecordEvent(enum.Enum):
    """What a rollout record documents."""

    SWITCH = "switch"
    ROLLBACK = "rollback"
    OUTCOME = "outcome"


class RolloutOutcome(enum.Enum):
    """Terminal result of an orchestration run."""

    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RolloutRecord:
    """Immutable audit entry."""

    event: RecordEvent
    application: str = ""
    run_id: Optional[str] = None
    version: Optional[str] = None
    from_slot: Optional[SlotId] = None
    to_slot: Optional[SlotId] = None
    outcome: Optional[RolloutOutcome] = None
    failure_reason: Optional[str] = None
    error_code: Optional[str] = None
    record_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "event": self.event.value,
            "application": self.application,
            "run_id": self.run_id,
            "version": self.version,
            "from_slot": self.from_slot.value if self.from_slot else None,
            "to_slot": self.to_slot.value if self.to_slot else None,
            "outcome": self.outcome.value if self.outcome else None,
            "failure_reason": self.failure_reason,
            "error_code": self.error_code,
            "created_at": self.created_at.isoformat(),
        }


class RolloutLog:
    """Append-only, thread-safe record log.

    When a store is attached every record is forwarded to it after being
    kept in memory.
    """

    def __init__(self, store=None, limit: Optional[int] = None):
        self._records: List[RolloutRecord] = []
        self._store = store
        self._limit = limit
        self._lock = threading.Lock()

    def append(self, record: RolloutRecord) -> RolloutRecord:
        with self._lock:
            self._records.append(record)
            if self._limit and len(self._records) > self._limit:
                del self._records[: len(self._records) - self._limit]
        logger.info(
            "Rollout record %s (run=%s version=%s outcome=%s)",
            record.event.value,
            record.run_id,
            record.version,
            record.outcome.value if record.outcome else "-",
        )
        if self._store is not None:
            self._store.append_record(record)
        return record

    def list(
        self,
        event: Optional[RecordEvent] = None,
        run_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[RolloutRecord]:
        """Records oldest first, optionally filtered."""
        with self._lock:
            records = list(self._records)
        if event is not None:
            records = [r for r in records if r.event == event]
        if run_id is not None:
            records = [r for r in records if r.run_id == run_id]
        if limit is not None:
            records = records[-limit:]
        return records

    def latest_switch_to(self, slot_id: SlotId) -> Optional[RolloutRecord]:
        """Most recent SWITCH record that moved traffic onto ``slot_id``."""
        with self._lock:
            for record in reversed(self._records):
                if record.event == RecordEvent.SWITCH and record.to_slot == slot_id:
                    return record
        return None

    def outcome_for(self, run_id: str) -> Optional[RolloutRecord]:
        for record in self.list(event=RecordEvent.OUTCOME, run_id=run_id):
            return record
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
