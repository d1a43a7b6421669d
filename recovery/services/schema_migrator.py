"""
Schema migrator — versioned upgrade of stored tracking records.

This is the record-level data version (`tracking_records.schema_version`),
separate from the Alembic DDL revisions under migrations/.

Every step from the stored version up to CURRENT_SCHEMA_VERSION runs in
order; the final version number is written once, after every step for
every record has succeeded, in a single commit. A failing step rolls the
session back and raises MigrationFailedError.

  v0 → v1  level raw value: empty/unparseable → lowest level, legacy
           integer ordinal → level name. bonus_days, lifetime_bonus_days,
           relapse_count, max_streak clamped to >= 0.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recovery.core.errors import MigrationFailedError
from recovery.models.tracking_record import TrackingRecord
from recovery.services.catalog import HealingLevel

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

def _migrate_v0_to_v1(record: TrackingRecord) -> None:
    record.current_level_raw = HealingLevel.from_raw(record.current_level_raw).name

    if record.bonus_days is None or record.bonus_days < 0:
        record.bonus_days = 0.0
    if record.lifetime_bonus_days is None or record.lifetime_bonus_days < 0:
        record.lifetime_bonus_days = 0.0
    if record.relapse_count is None or record.relapse_count < 0:
        record.relapse_count = 0
    if record.max_streak is None or record.max_streak < 0:
        record.max_streak = 0


MigrationStep = Callable[[TrackingRecord], None]

STEPS: dict[int, MigrationStep] = {
    0: _migrate_v0_to_v1,
}


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class MigrationResult:
    target_version: int
    migrated: list[tuple[int, int]] = field(default_factory=list)  # (record id, from version)
    skipped_newer: list[int] = field(default_factory=list)         # record ids ahead of the code


# ---------------------------------------------------------------------------
# Migrator
# ---------------------------------------------------------------------------

class SchemaMigrator:
    def __init__(
        self,
        current_version: int = CURRENT_SCHEMA_VERSION,
        steps: dict[int, MigrationStep] | None = None,
    ):
        self.current_version = current_version
        self.steps = STEPS if steps is None else steps

    def migrate(self, db: Session) -> MigrationResult:
        """Upgrade every stored record to current_version. Idempotent."""
        result = MigrationResult(target_version=self.current_version)
        records = db.query(TrackingRecord).order_by(TrackingRecord.id).all()

        pending: list[TrackingRecord] = []
        for record in records:
            stored = record.schema_version or 0
            if stored > self.current_version:
                logger.warning(
                    "Tracking record %s has schema version %s, newer than %s; leaving it as is",
                    record.id, stored, self.current_version,
                )
                result.skipped_newer.append(record.id)
                continue
            if stored == self.current_version:
                continue

            version = max(stored, 0)
            try:
                while version < self.current_version:
                    step = self.steps.get(version)
                    if step is not None:
                        step(record)
                    version += 1
            except Exception as exc:
                db.rollback()
                logger.exception("Migration of tracking record %s failed at version %s", record.id, version)
                raise MigrationFailedError(stored, self.current_version, str(exc)) from exc

            pending.append(record)
            result.migrated.append((record.id, stored))

        if not pending:
            return result

        for record in pending:
            record.schema_version = self.current_version
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Could not persist schema version %s", self.current_version)
            raise MigrationFailedError(
                min(v for _, v in result.migrated), self.current_version, str(exc)
            ) from exc

        logger.info(
            "Migrated %d tracking record(s) to schema version %s",
            len(pending), self.current_version,
        )
        return result
