"""
ProgressionState — the in-memory value tracked for the session, plus
pure derived metrics.

The state is a frozen dataclass; the engine produces new states with
dataclasses.replace(). Every derived metric is a plain function of
(state, now), so nothing here reads the clock.

Derived metrics
---------------
  days_since_program_start   calendar days since program start
  days_in_level              calendar days since level start
  current_streak_days        calendar days since no-contact start (>= 0)
  total_healing_days         streak + floor(bonus_days)
  detox_progress             clamp(days_since_program_start / total_program_days, 0, 1)
  level_progress             1 at the terminal level, else
                             clamp((days_in_level + bonus) / required, 0, 1)
  days_left_in_level         max(ceil(required - (days_in_level + bonus)), 0)
  weekly_statuses            Monday-first [none|clean|relapsed] x 7
"""
from __future__ import annotations

import enum
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from recovery.services.catalog import BadgeType, HealingLevel, PowerActionType
from recovery.services.dates import days_between, monday_of_week, same_day, start_of_day


DEFAULT_TOTAL_PROGRAM_DAYS = 180


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Child values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PowerAction:
    type: PowerActionType
    date: datetime
    note: Optional[str] = None
    id: str = field(default_factory=_new_id)


@dataclass(frozen=True)
class CheckIn:
    date: datetime            # UTC midnight
    mood: int                 # 1..5
    urge: int                 # 0..10
    note: Optional[str] = None
    id: str = field(default_factory=_new_id)


@dataclass(frozen=True)
class Badge:
    type: BadgeType
    earned_date: datetime
    id: str = field(default_factory=_new_id)


class WeekDayStatus(str, enum.Enum):
    none = "none"
    clean = "clean"
    relapsed = "relapsed"


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProgressionState:
    ex_name: str
    program_start_date: datetime
    total_program_days: int
    level_start_date: datetime
    current_level: HealingLevel
    no_contact_start_date: datetime
    last_relapse_date: Optional[datetime] = None
    relapse_count: int = 0
    max_streak: int = 0
    bonus_days: float = 0.0
    lifetime_bonus_days: float = 0.0
    relapse_dates: tuple[datetime, ...] = ()
    power_actions: tuple[PowerAction, ...] = ()
    check_ins: tuple[CheckIn, ...] = ()
    badges: tuple[Badge, ...] = ()

    @classmethod
    def initial(
        cls,
        now: datetime,
        total_program_days: int = DEFAULT_TOTAL_PROGRAM_DAYS,
        ex_name: str = "",
    ) -> "ProgressionState":
        """Day-zero defaults: every start date is `now`, nothing recorded yet."""
        today = start_of_day(now)
        return cls(
            ex_name=ex_name,
            program_start_date=now,
            total_program_days=max(int(total_program_days), 1),
            level_start_date=today,
            current_level=HealingLevel.lowest(),
            no_contact_start_date=today,
        )

    def has_power_action(self, action_type: PowerActionType) -> bool:
        return any(a.type == action_type for a in self.power_actions)

    def has_badge(self, badge_type: BadgeType) -> bool:
        return any(b.type == badge_type for b in self.badges)

    def check_in_for(self, day: datetime) -> Optional[CheckIn]:
        return next((c for c in self.check_ins if same_day(c.date, day)), None)


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------

def _clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def days_since_program_start(state: ProgressionState, now: datetime) -> int:
    return days_between(state.program_start_date, now)


def days_in_level(state: ProgressionState, now: datetime) -> int:
    return days_between(state.level_start_date, now)


def current_streak_days(state: ProgressionState, now: datetime) -> int:
    return days_between(state.no_contact_start_date, now)


def total_healing_days(state: ProgressionState, now: datetime) -> int:
    return current_streak_days(state, now) + math.floor(state.bonus_days)


def detox_progress(state: ProgressionState, now: datetime) -> float:
    total = max(state.total_program_days, 1)
    return _clamp01(days_since_program_start(state, now) / total)


def level_progress(state: ProgressionState, now: datetime) -> float:
    required = state.current_level.min_days_required
    if required == 0:
        return 1.0
    return _clamp01((days_in_level(state, now) + state.bonus_days) / required)


def days_left_in_level(state: ProgressionState, now: datetime) -> int:
    required = state.current_level.min_days_required
    if required == 0:
        return 0
    remaining = required - (days_in_level(state, now) + state.bonus_days)
    return max(math.ceil(remaining), 0)


def days_left_in_program(state: ProgressionState, now: datetime) -> int:
    return max(state.total_program_days - days_since_program_start(state, now), 0)


def freedom_date(state: ProgressionState) -> datetime:
    return start_of_day(state.program_start_date) + timedelta(days=state.total_program_days)


def weekly_statuses(state: ProgressionState, now: datetime) -> list[WeekDayStatus]:
    """
    Status of each day of the current Monday-first week. Days in the
    future or before the program started are `none`; a day holding a
    relapse is `relapsed`; every other day is `clean`.
    """
    today = start_of_day(now)
    monday = monday_of_week(now)
    program_start = start_of_day(state.program_start_date)
    relapse_days = {start_of_day(d) for d in state.relapse_dates}

    statuses = []
    for offset in range(7):
        day = monday + timedelta(days=offset)
        if day > today or day < program_start:
            statuses.append(WeekDayStatus.none)
        elif day in relapse_days:
            statuses.append(WeekDayStatus.relapsed)
        else:
            statuses.append(WeekDayStatus.clean)
    return statuses


def weekly_check_ins(state: ProgressionState, now: datetime) -> list[Optional[CheckIn]]:
    monday = monday_of_week(now)
    return [state.check_in_for(monday + timedelta(days=offset)) for offset in range(7)]


def today_check_in(state: ProgressionState, now: datetime) -> Optional[CheckIn]:
    return state.check_in_for(now)


def _recent_check_ins(state: ProgressionState, now: datetime) -> list[CheckIn]:
    week_ago = start_of_day(now) - timedelta(days=7)
    return [c for c in state.check_ins if start_of_day(c.date) >= week_ago]


def average_mood_this_week(state: ProgressionState, now: datetime) -> float:
    recent = _recent_check_ins(state, now)
    if not recent:
        return 0.0
    return sum(c.mood for c in recent) / len(recent)


def average_urge_this_week(state: ProgressionState, now: datetime) -> float:
    recent = _recent_check_ins(state, now)
    if not recent:
        return 0.0
    return sum(c.urge for c in recent) / len(recent)


@dataclass
class MetricsSnapshot:
    days_since_program_start: int
    days_in_level: int
    current_streak_days: int
    total_healing_days: int
    detox_progress: float
    level_progress: float
    days_left_in_level: int
    days_left_in_program: int
    freedom_date: datetime
    weekly_statuses: list[WeekDayStatus]
    successful_days_this_week: int
    relapse_days_this_week: int
    has_checked_in_today: bool
    average_mood_this_week: float
    average_urge_this_week: float
    total_power_actions_completed: int


def metrics_snapshot(state: ProgressionState, now: datetime) -> MetricsSnapshot:
    week = weekly_statuses(state, now)
    return MetricsSnapshot(
        days_since_program_start=days_since_program_start(state, now),
        days_in_level=days_in_level(state, now),
        current_streak_days=current_streak_days(state, now),
        total_healing_days=total_healing_days(state, now),
        detox_progress=detox_progress(state, now),
        level_progress=level_progress(state, now),
        days_left_in_level=days_left_in_level(state, now),
        days_left_in_program=days_left_in_program(state, now),
        freedom_date=freedom_date(state),
        weekly_statuses=week,
        successful_days_this_week=sum(1 for s in week if s == WeekDayStatus.clean),
        relapse_days_this_week=sum(1 for s in week if s == WeekDayStatus.relapsed),
        has_checked_in_today=today_check_in(state, now) is not None,
        average_mood_this_week=average_mood_this_week(state, now),
        average_urge_this_week=average_urge_this_week(state, now),
        total_power_actions_completed=len(state.power_actions),
    )
