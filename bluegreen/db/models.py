"""SQLAlchemy ORM models for the blue/green controller.

Tables:
- rollout_records: Append-only audit trail of switches, rollbacks and run outcomes
- slot_states: Last persisted state of each deployment slot
"""

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, UniqueConstraint, func

from bluegreen.db.base import Base


class RolloutRecordRow(Base):
    """One rollout record. Rows are never updated."""

    __tablename__ = "rollout_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String(36), unique=True, nullable=False)
    application = Column(String(100), nullable=False, index=True)
    event = Column(String(20), nullable=False)
    run_id = Column(String(36), nullable=True, index=True)
    version = Column(String(100), nullable=True)
    from_slot = Column(String(10), nullable=True)
    to_slot = Column(String(10), nullable=True)
    outcome = Column(String(20), nullable=True)
    failure_reason = Column(Text, nullable=True)
    error_code = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_rollout_records_app_created", "application", "created_at"),
    )


class SlotStateRow(Base):
    """Persisted view of one slot, keyed by application and slot."""

    __tablename__ = "slot_states"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application = Column(String(100), nullable=False)
    slot_id = Column(String(10), nullable=False)
    endpoint = Column(String(255), nullable=False, default="")
    current_version = Column(String(100), nullable=True)
    desired_version = Column(String(100), nullable=True)
    health = Column(String(20), nullable=False, default="unknown")
    activity = Column(String(20), nullable=False, default="standby")
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("application", "slot_id", name="uq_slot_states_app_slot"),
    )
