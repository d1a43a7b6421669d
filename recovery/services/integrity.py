"""
Integrity layer — repairs stored data in place.

  enforce_single_record   keep the earliest record by program start
                          (ties → lowest id), delete the rest with their
                          children
  purge_orphans           delete child rows whose parent is missing
  deduplicate_children    relapses / power actions / check-ins by uid,
                          check-ins by calendar day, one-time power
                          actions by type, badges by type
  validate_record         clamp every scalar and date into range

Bad values are never reported as errors: they are corrected silently and
counted in the IntegrityReport. Nothing here commits; the caller owns the
transaction.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from recovery.models import CHILD_MODELS
from recovery.models.tracking_record import TrackingRecord
from recovery.services.catalog import BadgeType, HealingLevel, PowerActionType
from recovery.services.dates import as_utc, clamp_not_future, start_of_day
from recovery.services.progression_engine import MOOD_RANGE, URGE_RANGE

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class IntegrityReport:
    duplicate_records_removed: int = 0
    orphans_removed: int = 0
    duplicate_children_removed: int = 0
    fields_corrected: int = 0

    @property
    def repaired(self) -> bool:
        return bool(
            self.duplicate_records_removed
            or self.orphans_removed
            or self.duplicate_children_removed
            or self.fields_corrected
        )


# ---------------------------------------------------------------------------
# Single record
# ---------------------------------------------------------------------------

def enforce_single_record(db: Session, report: IntegrityReport) -> Optional[TrackingRecord]:
    """Return the surviving record (or None when storage is empty)."""
    records = (
        db.query(TrackingRecord)
        .order_by(
            TrackingRecord.program_start_date.is_(None),
            TrackingRecord.program_start_date,
            TrackingRecord.id,
        )
        .all()
    )
    if not records:
        return None

    survivor, duplicates = records[0], records[1:]
    for duplicate in duplicates:
        db.delete(duplicate)
    if duplicates:
        db.flush()
        report.duplicate_records_removed += len(duplicates)
        logger.warning(
            "Removed %d duplicate tracking record(s); kept id=%s",
            len(duplicates), survivor.id,
        )
    return survivor


def purge_orphans(db: Session, report: IntegrityReport) -> None:
    existing_ids = select(TrackingRecord.id)
    for model in CHILD_MODELS:
        orphans = (
            db.query(model)
            .filter(or_(model.record_id.is_(None), model.record_id.notin_(existing_ids)))
            .all()
        )
        for row in orphans:
            db.delete(row)
        if orphans:
            report.orphans_removed += len(orphans)
            logger.warning("Removed %d orphaned %s row(s)", len(orphans), model.__tablename__)
    db.flush()


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------

def _unique_by(rows: Iterable[T], key: Callable[[T], Any]) -> list[T]:
    seen: set = set()
    kept = []
    for row in rows:
        k = key(row)
        if k in seen:
            continue
        seen.add(k)
        kept.append(row)
    return kept


def _by_date_then_id(rows: Iterable[Any], attr: str) -> list[Any]:
    return sorted(rows, key=lambda r: (as_utc(getattr(r, attr)), r.id or 0))


def _power_action_key(row: Any) -> Any:
    action_type = PowerActionType.from_raw(row.type_raw)
    if action_type.is_repeatable:
        return ("uid", row.uid)
    return ("type", action_type)


def deduplicate_children(record: TrackingRecord, report: IntegrityReport) -> None:
    before = (
        len(record.relapses) + len(record.power_actions)
        + len(record.check_ins) + len(record.badges)
    )

    record.relapses = _unique_by(record.relapses, lambda r: r.uid)

    power_actions = _unique_by(record.power_actions, lambda r: r.uid)
    record.power_actions = sorted(
        _unique_by(_by_date_then_id(power_actions, "date"), _power_action_key),
        key=lambda r: r.id or 0,
    )

    check_ins = _unique_by(record.check_ins, lambda r: r.uid)
    record.check_ins = _unique_by(check_ins, lambda r: start_of_day(r.date))

    known_badges = [b for b in record.badges if BadgeType.parse(b.type_raw) is not None]
    record.badges = sorted(
        _unique_by(_by_date_then_id(known_badges, "earned_date"), lambda r: r.type_raw),
        key=lambda r: r.id or 0,
    )

    after = (
        len(record.relapses) + len(record.power_actions)
        + len(record.check_ins) + len(record.badges)
    )
    if after < before:
        report.duplicate_children_removed += before - after
        logger.warning("Removed %d duplicate child row(s) from record %s", before - after, record.id)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _assign(obj: Any, attr: str, value: Any, report: IntegrityReport) -> None:
    current = getattr(obj, attr)
    if isinstance(current, datetime) and isinstance(value, datetime):
        changed = as_utc(current) != as_utc(value)
    else:
        changed = current != value
    if changed:
        logger.debug("Corrected %s.%s: %r -> %r", type(obj).__name__, attr, current, value)
        setattr(obj, attr, value)
        report.fields_corrected += 1


def _non_negative_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _non_negative_float(value: Any) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(v) or v < 0:
        return 0.0
    return v


def _valid_date(value: Optional[datetime], now: datetime, day: bool) -> datetime:
    if value is None:
        value = now
    value = clamp_not_future(value, now)
    return start_of_day(value) if day else value


def _clamp_range(value: Any, bounds: tuple[int, int]) -> int:
    low, high = bounds
    try:
        return min(max(int(value), low), high)
    except (TypeError, ValueError):
        return low


def validate_record(
    record: TrackingRecord,
    now: datetime,
    report: IntegrityReport,
    default_total_days: int = 180,
) -> None:
    """Clamp every scalar, date and child value into its valid range."""
    corrected_before = report.fields_corrected
    _assign(record, "ex_name", record.ex_name or "", report)

    total = record.total_program_days if record.total_program_days is not None else default_total_days
    _assign(record, "total_program_days", _non_negative_int(total) or 1, report)

    level = HealingLevel.from_raw(record.current_level_raw)
    _assign(record, "current_level_raw", level.name, report)

    _assign(record, "relapse_count", _non_negative_int(record.relapse_count), report)
    _assign(record, "max_streak", _non_negative_int(record.max_streak), report)

    bonus = min(_non_negative_float(record.bonus_days), float(level.max_bonus_days))
    _assign(record, "bonus_days", bonus, report)
    _assign(record, "lifetime_bonus_days", _non_negative_float(record.lifetime_bonus_days), report)

    _assign(record, "program_start_date", _valid_date(record.program_start_date, now, day=False), report)
    _assign(record, "level_start_date", _valid_date(record.level_start_date, now, day=True), report)
    _assign(record, "no_contact_start_date", _valid_date(record.no_contact_start_date, now, day=True), report)
    if record.last_relapse_date is not None:
        _assign(record, "last_relapse_date", _valid_date(record.last_relapse_date, now, day=True), report)

    for relapse in record.relapses:
        _assign(relapse, "date", _valid_date(relapse.date, now, day=True), report)
    for action in record.power_actions:
        _assign(action, "date", _valid_date(action.date, now, day=False), report)
    for check_in in record.check_ins:
        _assign(check_in, "date", _valid_date(check_in.date, now, day=True), report)
        _assign(check_in, "mood", _clamp_range(check_in.mood, MOOD_RANGE), report)
        _assign(check_in, "urge", _clamp_range(check_in.urge, URGE_RANGE), report)
    for badge in record.badges:
        _assign(badge, "earned_date", _valid_date(badge.earned_date, now, day=False), report)

    corrected = report.fields_corrected - corrected_before
    if corrected:
        logger.info("Validation corrected %d field(s) on record %s", corrected, record.id)
