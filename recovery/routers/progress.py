"""
Progress router — the presentation boundary over the reconciliation service.

GET    /progress                    state + derived metrics
GET    /progress/catalog            levels, power actions, badges
PUT    /progress/profile            ex name / program length
POST   /progress/relapses           record a relapse
POST   /progress/power-actions      record a power action
POST   /progress/check-ins          upsert today's (or a given day's) check-in
POST   /progress/badges             grant a badge manually
POST   /progress/reset              relapse + back to the lowest level
POST   /progress/integrity-check    repair storage
DELETE /progress                    erase everything and start over

Persistence failures never turn into HTTP errors here: mutations always
apply in memory and report `persisted: false` with the error envelope.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from recovery.core.deps import get_reconciliation
from recovery.schemas.progress import (
    BadgeInfoResponse,
    BadgeRequest,
    BadgeResponse,
    CatalogResponse,
    CheckInRequest,
    CheckInResponse,
    IntegrityCheckResponse,
    IntegrityReportResponse,
    LevelInfoResponse,
    MetricsResponse,
    MutationResponse,
    PowerActionInfoResponse,
    PowerActionRequest,
    PowerActionResponse,
    ProfileRequest,
    ProgressResponse,
    RelapseRequest,
)
from recovery.services.catalog import BADGES, LEVELS, POWER_ACTIONS
from recovery.services.reconciliation import PersistResult, ReconciliationService

router = APIRouter(prefix="/progress", tags=["progress"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _progress_to_response(service: ReconciliationService) -> ProgressResponse:
    state = service.state
    m = service.metrics()
    level_info = state.current_level.info
    return ProgressResponse(
        ex_name=state.ex_name,
        program_start_date=state.program_start_date,
        total_program_days=state.total_program_days,
        level_start_date=state.level_start_date,
        current_level=state.current_level.name,
        current_level_index=state.current_level.index,
        current_level_title=level_info.title,
        no_contact_start_date=state.no_contact_start_date,
        last_relapse_date=state.last_relapse_date,
        relapse_count=state.relapse_count,
        max_streak=state.max_streak,
        bonus_days=state.bonus_days,
        lifetime_bonus_days=state.lifetime_bonus_days,
        relapse_dates=list(state.relapse_dates),
        power_actions=[
            PowerActionResponse(id=a.id, type=a.type.value, date=a.date, note=a.note)
            for a in state.power_actions
        ],
        check_ins=[
            CheckInResponse(id=c.id, date=c.date, mood=c.mood, urge=c.urge, note=c.note)
            for c in state.check_ins
        ],
        badges=[
            BadgeResponse(
                id=b.id,
                type=b.type.value,
                title=b.type.info.title,
                emoji=b.type.info.emoji,
                earned_date=b.earned_date,
            )
            for b in state.badges
        ],
        metrics=MetricsResponse(
            days_since_program_start=m.days_since_program_start,
            days_in_level=m.days_in_level,
            current_streak_days=m.current_streak_days,
            total_healing_days=m.total_healing_days,
            detox_progress=m.detox_progress,
            level_progress=m.level_progress,
            days_left_in_level=m.days_left_in_level,
            days_left_in_program=m.days_left_in_program,
            freedom_date=m.freedom_date,
            weekly_statuses=[s.value for s in m.weekly_statuses],
            successful_days_this_week=m.successful_days_this_week,
            relapse_days_this_week=m.relapse_days_this_week,
            has_checked_in_today=m.has_checked_in_today,
            average_mood_this_week=m.average_mood_this_week,
            average_urge_this_week=m.average_urge_this_week,
            total_power_actions_completed=m.total_power_actions_completed,
        ),
    )


def _mutation_response(service: ReconciliationService, result: PersistResult) -> MutationResponse:
    return MutationResponse(
        persisted=result.ok,
        error=result.error.to_dict() if result.error else None,
        progress=_progress_to_response(service),
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get("", response_model=ProgressResponse, summary="Current progress and metrics")
def get_progress(service: ReconciliationService = Depends(get_reconciliation)):
    return _progress_to_response(service)


@router.get("/catalog", response_model=CatalogResponse, summary="Static levels, actions and badges")
def get_catalog():
    return CatalogResponse(
        levels=[
            LevelInfoResponse(
                level=level.name,
                index=level.index,
                title=info.title,
                subtitle=info.subtitle,
                emoji=info.emoji,
                min_days=info.min_days,
                max_bonus_days=info.max_bonus_days,
            )
            for level, info in LEVELS.items()
        ],
        power_actions=[
            PowerActionInfoResponse(
                type=action.value,
                display_name=info.display_name,
                description=info.description,
                bonus_days=info.bonus_days,
                repeatable=info.repeatable,
            )
            for action, info in POWER_ACTIONS.items()
        ],
        badges=[
            BadgeInfoResponse(type=badge.value, title=info.title, emoji=info.emoji, tagline=info.tagline)
            for badge, info in BADGES.items()
        ],
    )


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@router.put("/profile", response_model=MutationResponse, summary="Update ex name / program length")
def put_profile(payload: ProfileRequest, service: ReconciliationService = Depends(get_reconciliation)):
    result = service.update_profile(ex_name=payload.ex_name, total_program_days=payload.total_program_days)
    return _mutation_response(service, result)


@router.post("/relapses", response_model=MutationResponse, summary="Record a relapse")
def post_relapse(payload: RelapseRequest, service: ReconciliationService = Depends(get_reconciliation)):
    """
    Resets the no-contact streak and level clock, clears bonus days and
    bumps the relapse count. The level itself is kept.
    """
    result = service.record_relapse(date=payload.date)
    return _mutation_response(service, result)


@router.post("/power-actions", response_model=MutationResponse, summary="Record a power action")
def post_power_action(payload: PowerActionRequest, service: ReconciliationService = Depends(get_reconciliation)):
    """Repeating a one-time action is accepted and ignored."""
    result = service.record_power_action(payload.type, date=payload.date, note=payload.note)
    return _mutation_response(service, result)


@router.post("/check-ins", response_model=MutationResponse, summary="Record a daily check-in")
def post_check_in(payload: CheckInRequest, service: ReconciliationService = Depends(get_reconciliation)):
    """One check-in per day; a second call for the same day overwrites the first."""
    result = service.record_check_in(payload.mood, payload.urge, note=payload.note, date=payload.date)
    return _mutation_response(service, result)


@router.post("/badges", response_model=MutationResponse, summary="Grant a badge")
def post_badge(payload: BadgeRequest, service: ReconciliationService = Depends(get_reconciliation)):
    result = service.award_badge(payload.type)
    return _mutation_response(service, result)


@router.post("/reset", response_model=MutationResponse, summary="Reset progress to the first level")
def post_reset(service: ReconciliationService = Depends(get_reconciliation)):
    result = service.reset_progress()
    return _mutation_response(service, result)


@router.post("/integrity-check", response_model=IntegrityCheckResponse, summary="Repair stored data")
def post_integrity_check(service: ReconciliationService = Depends(get_reconciliation)):
    result = service.integrity_check()
    report = result.report
    return IntegrityCheckResponse(
        persisted=result.ok,
        error=result.error.to_dict() if result.error else None,
        record_id=result.record_id,
        report=IntegrityReportResponse(
            duplicate_records_removed=report.duplicate_records_removed,
            orphans_removed=report.orphans_removed,
            duplicate_children_removed=report.duplicate_children_removed,
            fields_corrected=report.fields_corrected,
        ),
    )


@router.delete("", response_model=MutationResponse, summary="Erase everything and start over")
def delete_progress(service: ReconciliationService = Depends(get_reconciliation)):
    result = service.erase_everything()
    if result.ok:
        result = service.bootstrap(seed_new_user=True)
    return _mutation_response(service, result)
