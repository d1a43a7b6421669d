from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recovery.db.base import Base

if TYPE_CHECKING:
    from recovery.models.tracking_record import TrackingRecord


class RelapseRecord(Base):
    """One row per recorded relapse. `date` is normalized to UTC midnight."""

    __tablename__ = "relapse_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    uid: Mapped[str] = mapped_column(
        String(36), nullable=False, index=True, default=lambda: str(uuid.uuid4())
    )
    record_id: Mapped[int | None] = mapped_column(
        ForeignKey("tracking_records.id", ondelete="CASCADE"), nullable=True, index=True
    )
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    record: Mapped[Optional["TrackingRecord"]] = relationship(back_populates="relapses")
