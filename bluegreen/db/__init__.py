"""Database package for the blue/green controller."""

from bluegreen.db.base import Base
from bluegreen.db.engine import get_engine, get_session_factory
from bluegreen.db.models import RolloutRecordRow, SlotStateRow
from bluegreen.db.store import SqlRolloutStore, store_from_settings

__all__ = [
    "Base",
    "get_engine",
    "get_session_factory",
    "RolloutRecordRow",
    "SlotStateRow",
    "SqlRolloutStore",
    "store_from_settings",
]
