"""
Progress request/response schemas.

GET  /progress                → ProgressResponse
POST /progress/*              → MutationResponse
GET  /progress/catalog        → CatalogResponse
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from recovery.services.catalog import BadgeType, PowerActionType


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class RelapseRequest(BaseModel):
    date: Optional[datetime] = Field(
        default=None, description="When the relapse happened. Defaults to now (UTC).",
    )


class PowerActionRequest(BaseModel):
    type: PowerActionType
    date: Optional[datetime] = None
    note: Optional[str] = Field(default=None, max_length=2000)


class CheckInRequest(BaseModel):
    # Out-of-range values are clamped by the engine, not rejected.
    mood: int = Field(description="1 (awful) … 5 (great)")
    urge: int = Field(description="0 (none) … 10 (overwhelming)")
    note: Optional[str] = Field(default=None, max_length=2000)
    date: Optional[datetime] = None


class BadgeRequest(BaseModel):
    type: BadgeType


class ProfileRequest(BaseModel):
    ex_name: Optional[str] = Field(default=None, max_length=128)
    total_program_days: Optional[int] = Field(default=None, ge=1, le=3650)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class PowerActionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    date: datetime
    note: Optional[str] = None


class CheckInResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    date: datetime
    mood: int
    urge: int
    note: Optional[str] = None


class BadgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    title: str
    emoji: str
    earned_date: datetime


class MetricsResponse(BaseModel):
    days_since_program_start: int
    days_in_level: int
    current_streak_days: int
    total_healing_days: int
    detox_progress: float
    level_progress: float
    days_left_in_level: int
    days_left_in_program: int
    freedom_date: datetime
    weekly_statuses: list[str] = Field(description='Monday-first: "none" | "clean" | "relapsed"')
    successful_days_this_week: int
    relapse_days_this_week: int
    has_checked_in_today: bool
    average_mood_this_week: float
    average_urge_this_week: float
    total_power_actions_completed: int


class ProgressResponse(BaseModel):
    ex_name: str
    program_start_date: datetime
    total_program_days: int
    level_start_date: datetime
    current_level: str
    current_level_index: int
    current_level_title: str
    no_contact_start_date: datetime
    last_relapse_date: Optional[datetime] = None
    relapse_count: int
    max_streak: int
    bonus_days: float
    lifetime_bonus_days: float
    relapse_dates: list[datetime]
    power_actions: list[PowerActionResponse]
    check_ins: list[CheckInResponse]
    badges: list[BadgeResponse]
    metrics: MetricsResponse


class IntegrityReportResponse(BaseModel):
    duplicate_records_removed: int
    orphans_removed: int
    duplicate_children_removed: int
    fields_corrected: int


class MutationResponse(BaseModel):
    persisted: bool = Field(description="False when the write failed; in-memory state still changed.")
    error: Optional[dict[str, Any]] = None
    progress: ProgressResponse


class IntegrityCheckResponse(BaseModel):
    persisted: bool
    error: Optional[dict[str, Any]] = None
    record_id: Optional[int] = None
    report: IntegrityReportResponse


class LevelInfoResponse(BaseModel):
    level: str
    index: int
    title: str
    subtitle: str
    emoji: str
    min_days: int
    max_bonus_days: int


class PowerActionInfoResponse(BaseModel):
    type: str
    display_name: str
    description: str
    bonus_days: float
    repeatable: bool


class BadgeInfoResponse(BaseModel):
    type: str
    title: str
    emoji: str
    tagline: str


class CatalogResponse(BaseModel):
    levels: list[LevelInfoResponse]
    power_actions: list[PowerActionInfoResponse]
    badges: list[BadgeInfoResponse]
