"""
Reconciliation service — keeps the in-memory ProgressionState and the
single durable TrackingRecord in step.

Entry points
------------
  bootstrap(seed_new_user)  migrate → single record → orphans → validate
                            → dedup → hydrate → catch up with elapsed time
                            → persist. Seeds a record when none exists.
  save()                    copy every scalar onto the (single) record,
                            re-validate, persist.
  integrity_check()         migrate → single record → orphans → validate
                            → dedup → persist. Storage only; the in-memory
                            state is left alone.
  record_*()                apply one engine operation in memory, then
                            append only the new child rows and write only
                            the scalars that changed.
  erase_everything()        delete every row, reset to day-zero defaults.

Failure policy
--------------
Event dates passed to record_*() are clamped to now. A stored record
whose schema_version is newer than the migrator supports is never
rewritten: every entry point that would touch it fails with
DataIntegrityError instead.

Every entry point returns a PersistResult and never raises storage
errors. SQLAlchemy failures become FetchFailedError / SaveFailedError /
DataIntegrityError, migration failures MigrationFailedError; all are
logged here. The in-memory state stays authoritative for the session
even when a write fails. Safe to call repeatedly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from recovery.core.errors import (
    DataIntegrityError,
    FetchFailedError,
    RecordMissingError,
    RecoveryError,
    SaveFailedError,
)
from recovery.models import CHILD_MODELS
from recovery.models.badge import BadgeRecord
from recovery.models.check_in import CheckInRecord
from recovery.models.power_action import PowerActionRecord
from recovery.models.relapse import RelapseRecord
from recovery.models.tracking_record import TrackingRecord
from recovery.services import progression_engine as engine
from recovery.services.catalog import BadgeType, HealingLevel, PowerActionType
from recovery.services.dates import (
    as_utc,
    as_utc_or_none,
    clamp_not_future,
    same_day,
    start_of_day,
    utcnow,
)
from recovery.services.integrity import (
    IntegrityReport,
    deduplicate_children,
    enforce_single_record,
    purge_orphans,
    validate_record,
)
from recovery.services.progression_engine import (
    BadgeAwarded,
    CheckInUpserted,
    EngineOutcome,
    PowerActionAdded,
    RelapseAdded,
)
from recovery.services.progression_state import (
    DEFAULT_TOTAL_PROGRAM_DAYS,
    Badge,
    CheckIn,
    MetricsSnapshot,
    PowerAction,
    ProgressionState,
    metrics_snapshot,
)
from recovery.services.schema_migrator import CURRENT_SCHEMA_VERSION, SchemaMigrator

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class PersistResult:
    """Outcome of one reconciliation entry point."""
    operation: str
    ok: bool = True
    error: Optional[RecoveryError] = None
    report: IntegrityReport = field(default_factory=IntegrityReport)
    record_id: Optional[int] = None
    created: bool = False     # a new TrackingRecord was inserted

    def fail(self, error: RecoveryError) -> None:
        self.ok = False
        self.error = error


# ---------------------------------------------------------------------------
# State <-> record mapping
# ---------------------------------------------------------------------------

def scalar_fields(state: ProgressionState) -> dict[str, Any]:
    return {
        "ex_name": state.ex_name,
        "program_start_date": state.program_start_date,
        "total_program_days": state.total_program_days,
        "level_start_date": state.level_start_date,
        "current_level_raw": state.current_level.name,
        "no_contact_start_date": state.no_contact_start_date,
        "last_relapse_date": state.last_relapse_date,
        "relapse_count": state.relapse_count,
        "max_streak": state.max_streak,
        "bonus_days": state.bonus_days,
        "lifetime_bonus_days": state.lifetime_bonus_days,
    }


def hydrate(record: TrackingRecord) -> ProgressionState:
    """Build a ProgressionState from a validated, deduplicated record."""
    badges = []
    for row in record.badges:
        badge_type = BadgeType.parse(row.type_raw)
        if badge_type is not None:
            badges.append(Badge(type=badge_type, earned_date=as_utc(row.earned_date), id=row.uid))

    return ProgressionState(
        ex_name=record.ex_name,
        program_start_date=as_utc(record.program_start_date),
        total_program_days=record.total_program_days,
        level_start_date=as_utc(record.level_start_date),
        current_level=HealingLevel.from_raw(record.current_level_raw),
        no_contact_start_date=as_utc(record.no_contact_start_date),
        last_relapse_date=as_utc_or_none(record.last_relapse_date),
        relapse_count=record.relapse_count,
        max_streak=record.max_streak,
        bonus_days=record.bonus_days,
        lifetime_bonus_days=record.lifetime_bonus_days,
        relapse_dates=tuple(sorted({start_of_day(r.date) for r in record.relapses})),
        power_actions=tuple(
            PowerAction(
                type=PowerActionType.from_raw(r.type_raw),
                date=as_utc(r.date),
                note=r.note,
                id=r.uid,
            )
            for r in record.power_actions
        ),
        check_ins=tuple(
            CheckIn(date=start_of_day(r.date), mood=r.mood, urge=r.urge, note=r.note, id=r.uid)
            for r in record.check_ins
        ),
        badges=tuple(badges),
    )


def _write_scalars(record: TrackingRecord, state: ProgressionState) -> None:
    for attr, value in scalar_fields(state).items():
        setattr(record, attr, value)


def _write_children(record: TrackingRecord, state: ProgressionState) -> None:
    """Full child copy; only used when a record is first created."""
    record.relapses = [RelapseRecord(date=d) for d in state.relapse_dates]
    record.power_actions = [_power_action_row(a) for a in state.power_actions]
    record.check_ins = [_check_in_row(c) for c in state.check_ins]
    record.badges = [_badge_row(b) for b in state.badges]


def _power_action_row(action: PowerAction) -> PowerActionRecord:
    return PowerActionRecord(uid=action.id, type_raw=action.type.value, date=action.date, note=action.note)


def _check_in_row(check_in: CheckIn) -> CheckInRecord:
    return CheckInRecord(
        uid=check_in.id, date=check_in.date, mood=check_in.mood, urge=check_in.urge, note=check_in.note,
    )


def _badge_row(badge: Badge) -> BadgeRecord:
    return BadgeRecord(uid=badge.id, type_raw=badge.type.value, earned_date=badge.earned_date)


def apply_outcome(record: TrackingRecord, before: ProgressionState, outcome: EngineOutcome) -> None:
    """Write only changed scalars and only the child rows the engine produced."""
    old = scalar_fields(before)
    for attr, value in scalar_fields(outcome.state).items():
        if old[attr] != value:
            setattr(record, attr, value)

    for effect in outcome.effects:
        if isinstance(effect, RelapseAdded):
            record.relapses.append(RelapseRecord(date=effect.date))
        elif isinstance(effect, PowerActionAdded):
            record.power_actions.append(_power_action_row(effect.action))
        elif isinstance(effect, CheckInUpserted):
            c = effect.check_in
            row = next((r for r in record.check_ins if same_day(r.date, c.date)), None)
            if row is None:
                record.check_ins.append(_check_in_row(c))
            else:
                row.mood, row.urge, row.note = c.mood, c.urge, c.note
        elif isinstance(effect, BadgeAwarded):
            if not any(r.type_raw == effect.badge.type.value for r in record.badges):
                record.badges.append(_badge_row(effect.badge))


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ReconciliationService:
    def __init__(
        self,
        session_factory: SessionFactory,
        clock: Callable[[], datetime] = utcnow,
        total_program_days: int = DEFAULT_TOTAL_PROGRAM_DAYS,
        migrator: Optional[SchemaMigrator] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self.total_program_days = max(int(total_program_days), 1)
        self.migrator = migrator or SchemaMigrator()
        self.state = ProgressionState.initial(self.now(), self.total_program_days)

    def now(self) -> datetime:
        return as_utc(self._clock())

    def metrics(self) -> MetricsSnapshot:
        return metrics_snapshot(self.state, self.now())

    # -- boundary -----------------------------------------------------------

    def _run(self, operation: str, work: Callable[[Session, PersistResult], None]) -> PersistResult:
        result = PersistResult(operation=operation)
        try:
            with self._session_factory() as db:
                work(db, result)
        except RecoveryError as exc:
            logger.error("%s failed: %s", operation, exc.message)
            result.fail(exc)
        except SQLAlchemyError as exc:
            logger.exception("%s failed while reading storage", operation)
            result.fail(FetchFailedError(operation, str(exc)))
        return result

    @staticmethod
    def _commit(db: Session, operation: str) -> None:
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise DataIntegrityError(
                f"Storage rejected '{operation}'", details={"reason": str(exc.orig)},
            ) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise SaveFailedError(operation, str(exc)) from exc

    @staticmethod
    def _locate(db: Session) -> Optional[TrackingRecord]:
        return (
            db.query(TrackingRecord)
            .order_by(
                TrackingRecord.program_start_date.is_(None),
                TrackingRecord.program_start_date,
                TrackingRecord.id,
            )
            .first()
        )

    def _ensure_supported(self, record: Optional[TrackingRecord], operation: str) -> None:
        """Refuse to touch a record written by a newer schema version."""
        if record is None:
            return
        stored = record.schema_version or 0
        supported = self.migrator.current_version
        if stored > supported:
            raise DataIntegrityError(
                f"Tracking record {record.id} has schema version {stored}, newer than {supported}; "
                f"'{operation}' left it untouched",
                details={"record_id": record.id, "schema_version": stored, "supported_version": supported},
            )

    def _repair(self, db: Session, report: IntegrityReport, operation: str) -> Optional[TrackingRecord]:
        self.migrator.migrate(db)
        record = enforce_single_record(db, report)
        self._ensure_supported(record, operation)
        purge_orphans(db, report)
        if record is not None:
            validate_record(record, self.now(), report, self.total_program_days)
            deduplicate_children(record, report)
        return record

    def _new_record(self, db: Session) -> TrackingRecord:
        record = TrackingRecord(schema_version=CURRENT_SCHEMA_VERSION)
        _write_scalars(record, self.state)
        _write_children(record, self.state)
        db.add(record)
        return record

    # -- lifecycle ----------------------------------------------------------

    def bootstrap(self, seed_new_user: bool = False) -> PersistResult:
        def work(db: Session, result: PersistResult) -> None:
            record = self._repair(db, result.report, "bootstrap")
            now = self.now()

            if record is None:
                if seed_new_user:
                    self.state = ProgressionState.initial(
                        now, self.state.total_program_days, ex_name=self.state.ex_name,
                    )
                record = self._new_record(db)
                result.created = True
                logger.info("No tracking record found; seeded a new one")
            else:
                hydrated = hydrate(record)
                outcome = engine.update_for_current_date(hydrated, now)
                apply_outcome(record, hydrated, outcome)
                self.state = outcome.state
                if hydrated.current_level != outcome.state.current_level:
                    logger.info(
                        "Advanced from %s to %s while the app was closed",
                        hydrated.current_level.name, outcome.state.current_level.name,
                    )

            self._commit(db, "bootstrap")
            result.record_id = record.id

        return self._run("bootstrap", work)

    def save(self) -> PersistResult:
        def work(db: Session, result: PersistResult) -> None:
            record = enforce_single_record(db, result.report)
            self._ensure_supported(record, "save")
            if record is None:
                record = self._new_record(db)
                result.created = True
            else:
                _write_scalars(record, self.state)
            validate_record(record, self.now(), result.report, self.total_program_days)
            self._commit(db, "save")
            result.record_id = record.id

        return self._run("save", work)

    def integrity_check(self) -> PersistResult:
        def work(db: Session, result: PersistResult) -> None:
            record = self._repair(db, result.report, "integrity_check")
            self._commit(db, "integrity_check")
            result.record_id = record.id if record is not None else None
            if result.report.repaired:
                logger.warning("Integrity check repaired storage: %s", result.report)

        return self._run("integrity_check", work)

    def erase_everything(self) -> PersistResult:
        """Delete every stored row and reset to day-zero defaults."""
        self.state = ProgressionState.initial(self.now(), self.total_program_days)

        def work(db: Session, result: PersistResult) -> None:
            for model in CHILD_MODELS:
                db.query(model).delete(synchronize_session=False)
            db.query(TrackingRecord).delete(synchronize_session=False)
            self._commit(db, "erase_everything")
            logger.info("All progress erased")

        return self._run("erase_everything", work)

    # -- mutations ----------------------------------------------------------

    def _mutate(self, operation: str, step: Callable[[ProgressionState], EngineOutcome]) -> PersistResult:
        before = self.state
        outcome = step(before)
        self.state = outcome.state

        def work(db: Session, result: PersistResult) -> None:
            record = self._locate(db)
            if record is None:
                logger.warning("No tracking record; %s applied in memory only", operation)
                result.fail(RecordMissingError(operation))
                return
            self._ensure_supported(record, operation)
            apply_outcome(record, before, outcome)
            self._commit(db, operation)
            result.record_id = record.id

        return self._run(operation, work)

    def _event_date(self, date: Optional[datetime]) -> datetime:
        """Caller-supplied event time, never later than now."""
        now = self.now()
        return clamp_not_future(date, now) if date is not None else now

    def record_relapse(self, date: Optional[datetime] = None) -> PersistResult:
        when = self._event_date(date)
        return self._mutate("record_relapse", lambda s: engine.record_relapse(s, when))

    def record_power_action(
        self,
        action_type: PowerActionType,
        date: Optional[datetime] = None,
        note: Optional[str] = None,
    ) -> PersistResult:
        now = self.now()
        when = self._event_date(date)
        return self._mutate(
            "record_power_action",
            lambda s: engine.record_power_action(s, action_type, when, note, now=now),
        )

    def record_check_in(
        self,
        mood: int,
        urge: int,
        note: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> PersistResult:
        when = self._event_date(date)
        return self._mutate(
            "record_check_in",
            lambda s: engine.record_check_in(s, mood, urge, when, note),
        )

    def award_badge(self, badge_type: BadgeType) -> PersistResult:
        now = self.now()
        return self._mutate("award_badge", lambda s: engine.award_badge(s, badge_type, now))

    def reset_progress(self) -> PersistResult:
        now = self.now()
        return self._mutate("reset_progress", lambda s: engine.reset_progress(s, now))

    def update_profile(
        self,
        ex_name: Optional[str] = None,
        total_program_days: Optional[int] = None,
    ) -> PersistResult:
        return self._mutate(
            "update_profile",
            lambda s: engine.update_profile(s, ex_name, total_program_days),
        )
