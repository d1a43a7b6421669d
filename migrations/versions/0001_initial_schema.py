"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

One tracking record plus four child tables. Child `uid` columns are
indexed but not unique and `record_id` is nullable: legacy data may hold
duplicates and orphans, which the integrity layer repairs at runtime.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_CHILD_TABLES = ("relapse_records", "power_action_records", "check_in_records", "badge_records")


def _child_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("uid", sa.String(36), nullable=False),
        sa.Column(
            "record_id",
            sa.Integer(),
            sa.ForeignKey("tracking_records.id", ondelete="CASCADE"),
            nullable=True,
        ),
    ]


def upgrade() -> None:
    # --- tracking_records ---
    op.create_table(
        "tracking_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ex_name", sa.String(128), nullable=False, server_default=""),
        sa.Column("program_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_program_days", sa.Integer(), nullable=False, server_default="180"),
        sa.Column("level_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_level_raw", sa.String(32), nullable=False, server_default="emergency"),
        sa.Column("no_contact_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_relapse_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("relapse_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bonus_days", sa.Float(), nullable=False, server_default="0"),
        sa.Column("lifetime_bonus_days", sa.Float(), nullable=False, server_default="0"),
        sa.Column("schema_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tracking_records_id", "tracking_records", ["id"])

    # --- relapse_records ---
    op.create_table(
        "relapse_records",
        *_child_columns(),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- power_action_records ---
    op.create_table(
        "power_action_records",
        *_child_columns(),
        sa.Column("type_raw", sa.String(64), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- check_in_records ---
    op.create_table(
        "check_in_records",
        *_child_columns(),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("mood", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("urge", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- badge_records ---
    op.create_table(
        "badge_records",
        *_child_columns(),
        sa.Column("type_raw", sa.String(64), nullable=False),
        sa.Column("earned_date", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    for table in _CHILD_TABLES:
        op.create_index(f"ix_{table}_id", table, ["id"])
        op.create_index(f"ix_{table}_uid", table, ["uid"])
        op.create_index(f"ix_{table}_record_id", table, ["record_id"])


def downgrade() -> None:
    for table in _CHILD_TABLES:
        op.drop_index(f"ix_{table}_record_id", table_name=table)
        op.drop_index(f"ix_{table}_uid", table_name=table)
        op.drop_index(f"ix_{table}_id", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_tracking_records_id", table_name="tracking_records")
    op.drop_table("tracking_records")
