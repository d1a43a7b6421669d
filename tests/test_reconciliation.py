"""
Tests for the reconciliation service (in-memory state ↔ durable record).

Covered scenarios:
  A) bootstrap  — seeding, duplicate collapse, catch-up, migration, idempotence
  B) mutations  — narrow writes per operation, missing record
  C) failures   — fetch / save errors returned, never raised
  D) save / integrity_check / erase_everything / restart
"""
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from recovery.core.errors import (
    DataIntegrityError,
    FetchFailedError,
    RecordMissingError,
    SaveFailedError,
)
from recovery.models import (
    BadgeRecord,
    CheckInRecord,
    PowerActionRecord,
    RelapseRecord,
    TrackingRecord,
)
from recovery.services.catalog import BadgeType, HealingLevel, PowerActionType
from recovery.services.dates import as_utc, start_of_day
from recovery.services.reconciliation import ReconciliationService

NOW = datetime(2026, 3, 18, 15, 30, tzinfo=timezone.utc)
DAY = timedelta(days=1)


def _stored(session_factory, start: datetime, **fields) -> int:
    values = dict(
        program_start_date=start,
        level_start_date=start_of_day(start),
        no_contact_start_date=start_of_day(start),
        schema_version=1,
    )
    values.update(fields)
    with session_factory() as db:
        record = TrackingRecord(**values)
        db.add(record)
        db.commit()
        return record.id


def _count(session_factory, model) -> int:
    with session_factory() as db:
        return db.query(model).count()


def _only_record(session_factory) -> TrackingRecord:
    with session_factory() as db:
        record = db.query(TrackingRecord).one()
        db.expunge(record)
        return record


# ---------------------------------------------------------------------------
# A) Bootstrap
# ---------------------------------------------------------------------------

class TestBootstrap:

    def test_empty_storage_seeds_record(self, service, session_factory):
        result = service.bootstrap(seed_new_user=True)

        assert result.ok
        assert result.created
        assert result.record_id is not None
        assert _count(session_factory, TrackingRecord) == 1
        assert service.state.current_level == HealingLevel.emergency
        assert service.state.program_start_date == NOW

    def test_collapses_duplicates_to_earliest(self, service, session_factory):
        _stored(session_factory, NOW - 3 * DAY, relapse_count=9)
        earliest = _stored(session_factory, NOW - 5 * DAY, relapse_count=2)
        _stored(session_factory, NOW - 4 * DAY)

        result = service.bootstrap()

        assert result.ok
        assert result.record_id == earliest
        assert result.report.duplicate_records_removed == 2
        assert _count(session_factory, TrackingRecord) == 1
        assert service.state.relapse_count == 2

    def test_catches_up_level_and_badges(self, service, session_factory):
        _stored(session_factory, NOW - 20 * DAY)

        service.bootstrap()

        assert service.state.current_level == HealingLevel.withdrawal
        assert service.state.level_start_date == start_of_day(NOW)
        assert {b.type for b in service.state.badges} == {
            BadgeType.first_day, BadgeType.week_streak, BadgeType.two_week_streak,
        }
        record = _only_record(session_factory)
        assert record.current_level_raw == "withdrawal"
        assert _count(session_factory, BadgeRecord) == 3

    def test_migrates_legacy_record(self, service, session_factory):
        _stored(session_factory, NOW - 5 * DAY, current_level_raw="3", bonus_days=-2.0, schema_version=0)

        result = service.bootstrap()

        assert result.ok
        assert service.state.current_level == HealingLevel.glow_up
        assert service.state.bonus_days == 0
        record = _only_record(session_factory)
        assert record.schema_version == 1
        assert record.current_level_raw == "glow_up"

    def test_repeated_bootstrap_is_stable(self, service, session_factory):
        _stored(session_factory, NOW - 20 * DAY)
        service.bootstrap()
        first_state = service.state

        result = service.bootstrap()

        assert result.ok
        assert not result.report.repaired
        assert service.state == first_state
        assert _count(session_factory, BadgeRecord) == 3

    def test_validates_out_of_range_values(self, service, session_factory):
        _stored(session_factory, NOW - 2 * DAY, bonus_days=12.0, relapse_count=-4)

        result = service.bootstrap()

        assert result.report.fields_corrected == 2
        assert service.state.bonus_days == 4.0
        assert service.state.relapse_count == 0


# ---------------------------------------------------------------------------
# B) Mutations
# ---------------------------------------------------------------------------

class TestMutations:

    def test_relapse_persists_row_and_counters(self, service, session_factory, clock):
        service.bootstrap(seed_new_user=True)
        clock.advance(days=10)

        result = service.record_relapse()

        assert result.ok
        assert service.state.max_streak == 10
        record = _only_record(session_factory)
        assert record.relapse_count == 1
        assert record.max_streak == 10
        assert _count(session_factory, RelapseRecord) == 1

    def test_power_action_writes_action_and_badge(self, service, session_factory):
        service.bootstrap(seed_new_user=True)

        service.record_power_action(PowerActionType.delete_photos, note="all of them")
        service.record_power_action(PowerActionType.delete_photos)

        assert _count(session_factory, PowerActionRecord) == 1
        assert _count(session_factory, BadgeRecord) == 1
        record = _only_record(session_factory)
        assert record.bonus_days == 1.0
        assert record.lifetime_bonus_days == 1.0

    def test_lifetime_bonus_persisted_past_cap(self, service, session_factory):
        service.bootstrap(seed_new_user=True)
        for action_type in (
            PowerActionType.delete_photos,
            PowerActionType.unfollow_ex,
            PowerActionType.block_ex,
            PowerActionType.archive_chats,
            PowerActionType.delete_number,
            PowerActionType.social_activity,
        ):
            service.record_power_action(action_type)

        record = _only_record(session_factory)
        assert record.bonus_days == 4.0
        assert record.lifetime_bonus_days == pytest.approx(4.25)

    def test_check_in_upserted(self, service, session_factory, clock):
        service.bootstrap(seed_new_user=True)

        service.record_check_in(2, 8, note="hard morning")
        clock.advance(hours=4)
        service.record_check_in(4, 3, note="better")

        with session_factory() as db:
            rows = db.query(CheckInRecord).all()
            assert [(r.mood, r.urge, r.note) for r in rows] == [(4, 3, "better")]

    def test_award_badge_once(self, service, session_factory):
        service.bootstrap(seed_new_user=True)

        service.award_badge(BadgeType.month_streak)
        service.award_badge(BadgeType.month_streak)

        assert _count(session_factory, BadgeRecord) == 1

    def test_reset_progress(self, service, session_factory):
        _stored(session_factory, NOW - 8 * DAY, current_level_raw="reality")
        service.bootstrap()

        result = service.reset_progress()

        assert result.ok
        assert service.state.current_level == HealingLevel.emergency
        record = _only_record(session_factory)
        assert record.current_level_raw == "emergency"
        assert record.relapse_count == 1
        assert record.max_streak == 8

    def test_update_profile(self, service, session_factory):
        service.bootstrap(seed_new_user=True)

        service.update_profile(ex_name="  Jordan ", total_program_days=90)

        record = _only_record(session_factory)
        assert record.ex_name == "Jordan"
        assert record.total_program_days == 90

    def test_missing_record_applies_in_memory_only(self, service, session_factory):
        result = service.record_relapse()

        assert not result.ok
        assert isinstance(result.error, RecordMissingError)
        assert service.state.relapse_count == 1
        assert _count(session_factory, TrackingRecord) == 0


# ---------------------------------------------------------------------------
# C) Failures
# ---------------------------------------------------------------------------

class _FailingCommitSession(Session):
    def commit(self):
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


class TestFailures:

    def test_unreadable_storage_returns_fetch_failed(self, clock):
        # No tables created.
        engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
        service = ReconciliationService(sessionmaker(bind=engine), clock=clock)

        result = service.bootstrap(seed_new_user=True)

        assert not result.ok
        assert isinstance(result.error, FetchFailedError)
        assert result.error.code == "FETCH_FAILED"
        engine.dispose()

    def test_commit_failure_returns_save_failed(self, engine, clock):
        factory = sessionmaker(bind=engine, class_=_FailingCommitSession)
        service = ReconciliationService(factory, clock=clock)

        result = service.bootstrap(seed_new_user=True)

        assert not result.ok
        assert isinstance(result.error, SaveFailedError)
        assert result.error.details["operation"] == "bootstrap"

    def test_memory_stays_authoritative_when_write_fails(self, engine, session_factory, clock):
        _stored(session_factory, NOW - 3 * DAY)
        service = ReconciliationService(
            sessionmaker(bind=engine, class_=_FailingCommitSession), clock=clock,
        )

        result = service.record_check_in(5, 0)

        assert not result.ok
        assert service.state.check_ins[0].mood == 5
        assert _count(session_factory, CheckInRecord) == 0


class TestEventDates:

    def test_future_relapse_clamped_to_today(self, service, session_factory):
        service.bootstrap(seed_new_user=True)

        result = service.record_relapse(date=NOW + 10 * DAY)

        assert result.ok
        assert service.state.no_contact_start_date == start_of_day(NOW)
        assert service.state.level_start_date == start_of_day(NOW)
        assert service.state.last_relapse_date == start_of_day(NOW)
        record = _only_record(session_factory)
        assert as_utc(record.no_contact_start_date) == start_of_day(NOW)
        assert as_utc(record.last_relapse_date) == start_of_day(NOW)
        with session_factory() as db:
            assert [as_utc(r.date) for r in db.query(RelapseRecord)] == [start_of_day(NOW)]

    def test_past_relapse_date_kept(self, service):
        service.bootstrap(seed_new_user=True)

        service.record_relapse(date=NOW - 2 * DAY)

        assert service.state.last_relapse_date == start_of_day(NOW - 2 * DAY)

    def test_future_power_action_clamped_to_now(self, service, session_factory):
        service.bootstrap(seed_new_user=True)

        service.record_power_action(PowerActionType.help_others, date=NOW + 3 * DAY)

        assert service.state.power_actions[-1].date == NOW
        with session_factory() as db:
            row = db.query(PowerActionRecord).one()
            assert as_utc(row.date) == NOW

    def test_backdated_power_action_badge_earned_now(self, service):
        service.bootstrap(seed_new_user=True)

        service.record_power_action(PowerActionType.block_ex, date=NOW - 5 * DAY)

        badge = next(b for b in service.state.badges if b.type == BadgeType.blocked_ex)
        assert badge.earned_date == NOW

    def test_future_check_in_lands_on_today(self, service, session_factory):
        service.bootstrap(seed_new_user=True)
        service.record_check_in(2, 8)

        service.record_check_in(5, 1, date=NOW + 3 * DAY)
        service.integrity_check()

        assert [(c.date, c.mood) for c in service.state.check_ins] == [(start_of_day(NOW), 5)]
        with session_factory() as db:
            rows = db.query(CheckInRecord).all()
            assert [(as_utc(r.date), r.mood) for r in rows] == [(start_of_day(NOW), 5)]

    def test_no_future_dates_after_any_mutation(self, service):
        service.bootstrap(seed_new_user=True)
        later = NOW + 30 * DAY

        service.record_power_action(PowerActionType.delete_photos, date=later)
        service.record_check_in(3, 3, date=later)
        service.record_relapse(date=later)

        state = service.state
        dates = [
            state.program_start_date,
            state.level_start_date,
            state.no_contact_start_date,
            state.last_relapse_date,
            *state.relapse_dates,
            *(a.date for a in state.power_actions),
            *(c.date for c in state.check_ins),
            *(b.earned_date for b in state.badges),
        ]
        assert all(d <= NOW for d in dates)


class TestNewerSchemaRecord:

    def _newer(self, session_factory) -> int:
        return _stored(
            session_factory,
            NOW - 5 * DAY,
            schema_version=5,
            current_level_raw="future_level",
            relapse_count=-3,
        )

    def _assert_untouched(self, session_factory):
        record = _only_record(session_factory)
        assert record.schema_version == 5
        assert record.current_level_raw == "future_level"
        assert record.relapse_count == -3
        assert _count(session_factory, RelapseRecord) == 0
        assert _count(session_factory, BadgeRecord) == 0

    def test_bootstrap_refuses_and_leaves_record(self, service, session_factory):
        record_id = self._newer(session_factory)

        result = service.bootstrap()

        assert not result.ok
        assert isinstance(result.error, DataIntegrityError)
        assert result.error.details["record_id"] == record_id
        assert result.error.details["schema_version"] == 5
        self._assert_untouched(session_factory)

    def test_duplicates_kept_when_survivor_is_newer(self, service, session_factory):
        self._newer(session_factory)
        _stored(session_factory, NOW - 2 * DAY)

        result = service.bootstrap()

        assert not result.ok
        assert _count(session_factory, TrackingRecord) == 2

    @pytest.mark.parametrize("operation", ["integrity_check", "save", "record_relapse"])
    def test_other_entry_points_refuse(self, service, session_factory, operation):
        self._newer(session_factory)

        result = getattr(service, operation)()

        assert not result.ok
        assert isinstance(result.error, DataIntegrityError)
        self._assert_untouched(session_factory)


# ---------------------------------------------------------------------------
# D) Save / integrity / erase / restart
# ---------------------------------------------------------------------------

class TestLifecycle:

    def test_save_copies_scalars_and_validates(self, service, session_factory):
        service.bootstrap(seed_new_user=True)
        service.state = replace(service.state, ex_name="Alex", bonus_days=9.0)

        result = service.save()

        assert result.ok
        assert result.report.fields_corrected == 1
        record = _only_record(session_factory)
        assert record.ex_name == "Alex"
        assert record.bonus_days == 4.0

    def test_save_without_record_creates_one(self, service, session_factory):
        result = service.save()

        assert result.ok
        assert result.created
        assert _count(session_factory, TrackingRecord) == 1

    def test_integrity_check_repairs_storage_only(self, service, session_factory):
        service.bootstrap(seed_new_user=True)
        state_before = service.state
        with session_factory() as db:
            record = db.query(TrackingRecord).one()
            record.badges.extend([
                BadgeRecord(type_raw="first_day", earned_date=NOW),
                BadgeRecord(type_raw="first_day", earned_date=NOW),
            ])
            db.add(RelapseRecord(record_id=None, date=NOW))
            db.commit()

        result = service.integrity_check()

        assert result.ok
        assert result.report.duplicate_children_removed == 1
        assert result.report.orphans_removed == 1
        assert _count(session_factory, BadgeRecord) == 1
        assert service.state is state_before

    def test_erase_everything(self, service, session_factory, clock):
        service.bootstrap(seed_new_user=True)
        clock.advance(days=3)
        service.record_power_action(PowerActionType.help_others)
        service.record_relapse()

        result = service.erase_everything()

        assert result.ok
        for model in (TrackingRecord, RelapseRecord, PowerActionRecord, CheckInRecord, BadgeRecord):
            assert _count(session_factory, model) == 0
        assert service.state.relapse_count == 0
        assert service.state.power_actions == ()

    def test_restart_restores_same_state(self, service, session_factory, clock):
        service.bootstrap(seed_new_user=True)
        service.update_profile(ex_name="Riley")
        service.record_power_action(PowerActionType.block_ex, note="finally")
        service.record_power_action(PowerActionType.reality_journaling)
        service.record_check_in(3, 6)

        restarted = ReconciliationService(session_factory, clock=clock)
        result = restarted.bootstrap()

        assert result.ok
        assert not result.created
        assert restarted.state == service.state
