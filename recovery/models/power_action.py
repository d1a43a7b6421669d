"""
PowerActionRecord — one completed power action.

type_raw holds the PowerActionType value; unknown values read back as
`custom`. One-time types may appear at most once per record (enforced by
the engine on write and by deduplication on integrity check).
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recovery.db.base import Base

if TYPE_CHECKING:
    from recovery.models.tracking_record import TrackingRecord


class PowerActionRecord(Base):
    __tablename__ = "power_action_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    uid: Mapped[str] = mapped_column(
        String(36), nullable=False, index=True, default=lambda: str(uuid.uuid4())
    )
    record_id: Mapped[int | None] = mapped_column(
        ForeignKey("tracking_records.id", ondelete="CASCADE"), nullable=True, index=True
    )
    type_raw: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    record: Mapped[Optional["TrackingRecord"]] = relationship(back_populates="power_actions")
