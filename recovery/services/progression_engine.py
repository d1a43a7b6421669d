"""
Progression Engine — pure state transitions.

Every operation takes a ProgressionState (plus the event and "now") and
returns an EngineOutcome: the new state and the child rows it produced.
Nothing here touches the database; the reconciliation service turns the
effects into narrow writes.

Rules
-----
  record_relapse
    Streak so far raises max_streak if larger. no-contact start, level
    start and last relapse become the relapse day; relapse_count += 1;
    the day joins the relapse-date set once; bonus_days = 0.
    Level and badges are untouched.

  record_power_action
    One-time type already recorded → no-op. Otherwise append, add the
    type's bonus (capped at the level's max), add the full bonus to
    lifetime_bonus_days, then advance_level_if_eligible + evaluate_badges
    (both evaluated at `now`, not at the action date).

  record_check_in
    Mood clamped to 1..5, urge to 0..10. One entry per day: overwrite
    in place if the day already has one.

  advance_level_if_eligible
    Terminal level → no-op. days_in_level + bonus_days >= min days →
    next level, level start = that day, bonus_days = 0. At most ONE
    level per call.

  evaluate_badges
    Eleven fixed predicates; a badge is appended only if its type is not
    already present. Idempotent.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Optional, Union

from recovery.services.catalog import BadgeType, HealingLevel, PowerActionType
from recovery.services.dates import same_day, start_of_day
from recovery.services.progression_state import (
    Badge,
    CheckIn,
    PowerAction,
    ProgressionState,
    current_streak_days,
    days_in_level,
)


MOOD_RANGE = (1, 5)
URGE_RANGE = (0, 10)


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RelapseAdded:
    date: datetime


@dataclass(frozen=True)
class PowerActionAdded:
    action: PowerAction


@dataclass(frozen=True)
class CheckInUpserted:
    check_in: CheckIn
    created: bool


@dataclass(frozen=True)
class BadgeAwarded:
    badge: Badge


SideEffect = Union[RelapseAdded, PowerActionAdded, CheckInUpserted, BadgeAwarded]


@dataclass(frozen=True)
class EngineOutcome:
    state: ProgressionState
    effects: tuple[SideEffect, ...] = field(default_factory=tuple)

    def then(self, step: Callable[[ProgressionState], "EngineOutcome"]) -> "EngineOutcome":
        """Chain another operation, accumulating its effects."""
        nxt = step(self.state)
        return EngineOutcome(nxt.state, self.effects + nxt.effects)


def _clamp(value: int, bounds: tuple[int, int]) -> int:
    low, high = bounds
    return min(max(int(value), low), high)


def clamp_bonus(bonus_days: float, level: HealingLevel) -> float:
    if math.isnan(bonus_days):
        return 0.0
    return min(max(float(bonus_days), 0.0), float(level.max_bonus_days))


# ---------------------------------------------------------------------------
# Level advancement
# ---------------------------------------------------------------------------

def advance_level_if_eligible(state: ProgressionState, current_date: datetime) -> EngineOutcome:
    required = state.current_level.min_days_required
    if required == 0:
        return EngineOutcome(state)

    effective = days_in_level(state, current_date) + state.bonus_days
    next_level = state.current_level.next_level
    if effective < required or next_level is None:
        return EngineOutcome(state)

    return EngineOutcome(replace(
        state,
        current_level=next_level,
        level_start_date=start_of_day(current_date),
        bonus_days=0.0,
    ))


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------

def _streak_at_least(days: int) -> Callable[[ProgressionState, datetime], bool]:
    return lambda state, now: current_streak_days(state, now) >= days


def _did(action_type: PowerActionType) -> Callable[[ProgressionState, datetime], bool]:
    return lambda state, now: state.has_power_action(action_type)


def _level_at_least(level: HealingLevel) -> Callable[[ProgressionState, datetime], bool]:
    return lambda state, now: state.current_level >= level


BADGE_RULES: tuple[tuple[BadgeType, Callable[[ProgressionState, datetime], bool]], ...] = (
    (BadgeType.first_day,          _streak_at_least(1)),
    (BadgeType.week_streak,        _streak_at_least(7)),
    (BadgeType.two_week_streak,    _streak_at_least(14)),
    (BadgeType.month_streak,       _streak_at_least(30)),
    (BadgeType.deleted_folder,     _did(PowerActionType.delete_photos)),
    (BadgeType.blocked_ex,         _did(PowerActionType.block_ex)),
    (BadgeType.unfollowed_all,     _did(PowerActionType.unfollow_ex)),
    (BadgeType.archived_chats,     _did(PowerActionType.archive_chats)),
    (BadgeType.deleted_number,     _did(PowerActionType.delete_number)),
    (BadgeType.glow_up_reached,    _level_at_least(HealingLevel.glow_up)),
    (BadgeType.unbothered_reached, _level_at_least(HealingLevel.unbothered)),
)


def evaluate_badges(state: ProgressionState, now: datetime) -> EngineOutcome:
    earned = {b.type for b in state.badges}
    new_badges = []
    for badge_type, predicate in BADGE_RULES:
        if badge_type in earned:
            continue
        if predicate(state, now):
            new_badges.append(Badge(type=badge_type, earned_date=now))
            earned.add(badge_type)

    if not new_badges:
        return EngineOutcome(state)
    return EngineOutcome(
        replace(state, badges=state.badges + tuple(new_badges)),
        tuple(BadgeAwarded(b) for b in new_badges),
    )


def award_badge(state: ProgressionState, badge_type: BadgeType, now: datetime) -> EngineOutcome:
    """Manually grant a badge; no-op if one of that type already exists."""
    if state.has_badge(badge_type):
        return EngineOutcome(state)
    badge = Badge(type=badge_type, earned_date=now)
    return EngineOutcome(replace(state, badges=state.badges + (badge,)), (BadgeAwarded(badge),))


def update_for_current_date(state: ProgressionState, now: datetime) -> EngineOutcome:
    """Catch up with elapsed time: level check first, then badges."""
    return (
        advance_level_if_eligible(state, now)
        .then(lambda s: evaluate_badges(s, now))
    )


# ---------------------------------------------------------------------------
# Relapse / reset
# ---------------------------------------------------------------------------

def record_relapse(state: ProgressionState, date: datetime) -> EngineOutcome:
    today = start_of_day(date)
    streak = current_streak_days(state, today)

    relapse_dates = state.relapse_dates
    effects: tuple[SideEffect, ...] = ()
    if not any(same_day(d, today) for d in relapse_dates):
        relapse_dates = relapse_dates + (today,)
        effects = (RelapseAdded(today),)

    new_state = replace(
        state,
        max_streak=max(state.max_streak, streak),
        last_relapse_date=today,
        no_contact_start_date=today,
        relapse_count=state.relapse_count + 1,
        relapse_dates=relapse_dates,
        level_start_date=today,
        bonus_days=0.0,
    )
    return EngineOutcome(new_state, effects)


def reset_progress(state: ProgressionState, now: datetime) -> EngineOutcome:
    """Relapse bookkeeping plus a drop back to the lowest level."""
    outcome = record_relapse(state, now)
    return EngineOutcome(
        replace(outcome.state, current_level=HealingLevel.lowest()),
        outcome.effects,
    )


# ---------------------------------------------------------------------------
# Power actions
# ---------------------------------------------------------------------------

def record_power_action(
    state: ProgressionState,
    action_type: PowerActionType,
    date: datetime,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EngineOutcome:
    """
    `date` is when the action happened; the level check and badges are
    evaluated at `now` (defaults to `date`), so a backdated action earns
    its badges as of today.
    """
    if not action_type.is_repeatable and state.has_power_action(action_type):
        return EngineOutcome(state)
    at = now if now is not None else date

    action = PowerAction(type=action_type, date=date, note=note)
    bonus = action_type.bonus_value
    new_state = replace(
        state,
        power_actions=state.power_actions + (action,),
        bonus_days=clamp_bonus(state.bonus_days + bonus, state.current_level),
        lifetime_bonus_days=state.lifetime_bonus_days + bonus,
    )
    return (
        EngineOutcome(new_state, (PowerActionAdded(action),))
        .then(lambda s: advance_level_if_eligible(s, at))
        .then(lambda s: evaluate_badges(s, at))
    )


# ---------------------------------------------------------------------------
# Check-ins
# ---------------------------------------------------------------------------

def record_check_in(
    state: ProgressionState,
    mood: int,
    urge: int,
    date: datetime,
    note: Optional[str] = None,
) -> EngineOutcome:
    today = start_of_day(date)
    mood = _clamp(mood, MOOD_RANGE)
    urge = _clamp(urge, URGE_RANGE)

    existing = state.check_in_for(today)
    if existing is not None:
        updated = replace(existing, mood=mood, urge=urge, note=note)
        check_ins = tuple(updated if c.id == existing.id else c for c in state.check_ins)
        return EngineOutcome(
            replace(state, check_ins=check_ins),
            (CheckInUpserted(updated, created=False),),
        )

    check_in = CheckIn(date=today, mood=mood, urge=urge, note=note)
    return EngineOutcome(
        replace(state, check_ins=state.check_ins + (check_in,)),
        (CheckInUpserted(check_in, created=True),),
    )


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

def update_profile(
    state: ProgressionState,
    ex_name: Optional[str] = None,
    total_program_days: Optional[int] = None,
) -> EngineOutcome:
    changes: dict = {}
    if ex_name is not None:
        changes["ex_name"] = ex_name.strip()
    if total_program_days is not None:
        changes["total_program_days"] = max(int(total_program_days), 1)
    return EngineOutcome(replace(state, **changes))
