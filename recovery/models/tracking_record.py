"""
TrackingRecord — the single durable row holding the user's scalar progress.

Exactly one row is expected after reconciliation runs; duplicates left by
older builds are removed by the integrity layer (earliest program start wins).

current_level_raw: level name ("emergency" … "unbothered"). Version-0 rows
may hold a legacy integer string ("0".."4"), an empty string or garbage;
the schema migrator and validator normalize it.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Integer, String, Float, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recovery.db.base import Base

if TYPE_CHECKING:
    from recovery.models.relapse import RelapseRecord
    from recovery.models.power_action import PowerActionRecord
    from recovery.models.check_in import CheckInRecord
    from recovery.models.badge import BadgeRecord


class TrackingRecord(Base):
    __tablename__ = "tracking_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    ex_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    program_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_program_days: Mapped[int] = mapped_column(Integer, nullable=False, default=180)
    level_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    current_level_raw: Mapped[str] = mapped_column(String(32), nullable=False, default="emergency")
    no_contact_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_relapse_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    relapse_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    lifetime_bonus_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    schema_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    relapses: Mapped[list["RelapseRecord"]] = relationship(
        back_populates="record", cascade="all, delete-orphan", order_by="RelapseRecord.id",
    )
    power_actions: Mapped[list["PowerActionRecord"]] = relationship(
        back_populates="record", cascade="all, delete-orphan", order_by="PowerActionRecord.id",
    )
    check_ins: Mapped[list["CheckInRecord"]] = relationship(
        back_populates="record", cascade="all, delete-orphan", order_by="CheckInRecord.id",
    )
    badges: Mapped[list["BadgeRecord"]] = relationship(
        back_populates="record", cascade="all, delete-orphan", order_by="BadgeRecord.id",
    )
