"""SQL-backed persistence for rollout records and slot state."""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select

from bluegreen.db.base import Base
from bluegreen.db.models import RolloutRecordRow, SlotStateRow
from bluegreen.deployment.config import SlotId
from bluegreen.deployment.records import RecordEvent, RolloutOutcome, RolloutRecord

logger = logging.getLogger(__name__)


class SqlRolloutStore:
    """Writes records through to the database and reloads slot state.

    Records are insert-only; slot state is upserted per (application, slot).
    """

    def __init__(self, session_factory, application: str):
        self._session_factory = session_factory
        self._application = application

    @classmethod
    def create_schema(cls, engine) -> None:
        """Create tables directly (tests and dry runs; production uses alembic)."""
        Base.metadata.create_all(engine)

    def append_record(self, record: RolloutRecord) -> None:
        with self._session_factory() as session:
            session.add(
                RolloutRecordRow(
                    record_id=record.record_id,
                    application=record.application or self._application,
                    event=record.event.value,
                    run_id=record.run_id,
                    version=record.version,
                    from_slot=record.from_slot.value if record.from_slot else None,
                    to_slot=record.to_slot.value if record.to_slot else None,
                    outcome=record.outcome.value if record.outcome else None,
                    failure_reason=record.failure_reason,
                    error_code=record.error_code,
                    created_at=record.created_at,
                )
            )
            session.commit()

    def list_records(
        self,
        run_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[RolloutRecord]:
        """Most recent records for the application, oldest first."""
        stmt = select(RolloutRecordRow).where(RolloutRecordRow.application == self._application)
        if run_id is not None:
            stmt = stmt.where(RolloutRecordRow.run_id == run_id)
        stmt = stmt.order_by(RolloutRecordRow.id.desc()).limit(limit)
        with self._session_factory() as session:
            rows = session.execute(stmt).scalars().all()
            return [_to_record(row) for row in reversed(rows)]

    def save_slots(self, rows: List[dict]) -> None:
        with self._session_factory() as session:
            existing = {
                row.slot_id: row
                for row in session.execute(
                    select(SlotStateRow).where(
                        SlotStateRow.application == self._application
                    )
                ).scalars()
            }
            for data in rows:
                row = existing.get(data["slot_id"])
                if row is None:
                    row = SlotStateRow(application=self._application, slot_id=data["slot_id"])
                    session.add(row)
                row.endpoint = data.get("endpoint") or ""
                row.current_version = data.get("current_version")
                row.desired_version = data.get("desired_version")
                row.health = data["health"]
                row.activity = data["activity"]
                row.updated_at = datetime.utcnow()
            session.commit()
        logger.debug("Persisted slot state for %s", self._application)

    def load_slots(self) -> List[dict]:
        """Slot rows in ``EnvironmentRegistry.snapshot()`` shape; empty if none."""
        with self._session_factory() as session:
            rows = session.execute(
                select(SlotStateRow).where(SlotStateRow.application == self._application)
            ).scalars().all()
            return [
                {
                    "slot_id": row.slot_id,
                    "endpoint": row.endpoint,
                    "current_version": row.current_version,
                    "desired_version": row.desired_version,
                    "health": row.health,
                    "activity": row.activity,
                }
                for row in rows
            ]


def _to_record(row: RolloutRecordRow) -> RolloutRecord:
    return RolloutRecord(
        event=RecordEvent(row.event),
        application=row.application,
        run_id=row.run_id,
        version=row.version,
        from_slot=SlotId(row.from_slot) if row.from_slot else None,
        to_slot=SlotId(row.to_slot) if row.to_slot else None,
        outcome=RolloutOutcome(row.outcome) if row.outcome else None,
        failure_reason=row.failure_reason,
        error_code=row.error_code,
        record_id=row.record_id,
        created_at=row.created_at,
    )


def store_from_settings(settings) -> Optional[SqlRolloutStore]:
    """A store on the configured database, or None when ``use_database`` is off."""
    if not settings.use_database:
        return None
    from bluegreen.db.engine import get_engine, get_session_factory

    return SqlRolloutStore(get_session_factory(get_engine()), settings.application)
