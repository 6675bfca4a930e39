"""Rollout records and slot state.

Revision ID: 001
Revises: None
Create Date: 2026-10-16
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "rollout_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("record_id", sa.String(36), nullable=False, unique=True),
        sa.Column("application", sa.String(100), nullable=False, index=True),
        sa.Column("event", sa.String(20), nullable=False),
        sa.Column("run_id", sa.String(36), nullable=True, index=True),
        sa.Column("version", sa.String(100), nullable=True),
        sa.Column("from_slot", sa.String(10), nullable=True),
        sa.Column("to_slot", sa.String(10), nullable=True),
        sa.Column("outcome", sa.String(20), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_rollout_records_app_created", "rollout_records", ["application", "created_at"]
    )

    op.create_table(
        "slot_states",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("application", sa.String(100), nullable=False),
        sa.Column("slot_id", sa.String(10), nullable=False),
        sa.Column("endpoint", sa.String(255), nullable=False, server_default=""),
        sa.Column("current_version", sa.String(100), nullable=True),
        sa.Column("desired_version", sa.String(100), nullable=True),
        sa.Column("health", sa.String(20), nullable=False, server_default="unknown"),
        sa.Column("activity", sa.String(20), nullable=False, server_default="standby"),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("application", "slot_id", name="uq_slot_states_app_slot"),
    )


def downgrade() -> None:
    op.drop_table("slot_states")
    op.drop_index("ix_rollout_records_app_created", table_name="rollout_records")
    op.drop_table("rollout_records")
