"""Schedule schemas for API validation."""
import datetime as dt
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import DayOfWeek, WaitlistStatus


# ==================== Sessions ====================


class SessionDraft(BaseModel):
    """Candidate session slot to check for conflicts."""

    coach_id: UUID
    branch_id: UUID
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    facility: str | None = None
    session_id: UUID | None = None  # Excluded from the overlap set when editing

    @model_validator(mode="after")
    def check_time_order(self) -> "SessionDraft":
        if self.start_time >= self.end_time:
            raise ValueError("end_time must be after start_time")
        return self


class SessionCreate(BaseModel):
    """Schema for creating a training session."""

    program_id: UUID
    coach_id: UUID
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    facility: str | None = Field(default=None, max_length=100)
    max_capacity: int | None = Field(default=None, ge=1)
    is_recurring: bool = False
    repeat_weekly: bool = False  # Also create weekly copies up to the program end
    notes: str | None = None

    @model_validator(mode="after")
    def check_time_order(self) -> "SessionCreate":
        if self.start_time >= self.end_time:
            raise ValueError("end_time must be after start_time")
        return self


class SessionUpdate(BaseModel):
    """Schema for updating a training session. Only supplied fields change."""

    coach_id: UUID | None = None
    date: dt.date | None = None
    start_time: dt.time | None = None
    end_time: dt.time | None = None
    facility: str | None = Field(default=None, max_length=100)
    max_capacity: int | None = Field(default=None, ge=1)
    notes: str | None = None


class SessionCancel(BaseModel):
    """Schema for cancelling a training session."""

    reason: str | None = None
    permanent: bool = False


class SessionResponse(BaseModel):
    """Schema for training session response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    program_id: UUID
    branch_id: UUID
    coach_id: UUID
    date: dt.date
    day_of_week: DayOfWeek
    start_time: dt.time
    end_time: dt.time
    facility: str | None
    max_capacity: int
    current_enrollment: int
    is_recurring: bool
    is_cancelled: bool
    cancellation_reason: str | None
    cancelled_by: UUID | None
    cancelled_at: dt.datetime | None
    notes: str | None
    reminder_sent_24h: bool
    reminder_sent_1h: bool


class ConflictResponse(BaseModel):
    """A session that collides with the requested slot."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    program_id: UUID
    program_name: str | None
    program_name_ar: str | None
    coach_id: UUID
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    facility: str | None


class ValidationResponse(BaseModel):
    is_valid: bool
    coach_conflicts: list[ConflictResponse] = []
    facility_conflicts: list[ConflictResponse] = []


class FanoutSummary(BaseModel):
    notifications_sent: int = 0
    notifications_failed: int = 0
    sms_sent: int = 0
    sms_failed: int = 0


class SessionChangeResponse(BaseModel):
    """Result of a create/update/cancel, including notification delivery."""

    session_id: UUID
    session: SessionResponse | None = None
    recurring_created: int = 0
    recurring_skipped: int = 0
    notifications: FanoutSummary


# ==================== Recurrence ====================


class RecurrenceRequest(BaseModel):
    """Window for expanding a program's weekly template."""

    start_date: dt.date | None = None
    end_date: dt.date | None = None
    weeks_ahead: int | None = Field(default=None, ge=1, le=52)
    validate_conflicts: bool = False

    @model_validator(mode="after")
    def check_window(self) -> "RecurrenceRequest":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class DraftSessionResponse(BaseModel):
    """Expanded session not yet persisted."""

    model_config = ConfigDict(from_attributes=True)

    program_id: UUID
    branch_id: UUID
    coach_id: UUID
    date: dt.date
    day_of_week: DayOfWeek
    start_time: dt.time
    end_time: dt.time
    facility: str | None
    max_capacity: int
    current_enrollment: int


class RecurrenceResponse(BaseModel):
    created: list[SessionResponse]
    skipped: list[DraftSessionResponse] = []


# ==================== Views ====================


class CoachWeekResponse(BaseModel):
    coach_id: UUID
    coach_name: str
    week_start: dt.date
    week_end: dt.date
    sessions: list[SessionResponse]


class CoachWorkload(BaseModel):
    coach_name: str
    total_sessions: int
    active_sessions: int
    cancelled_sessions: int
    total_hours: float


class FacilityUsage(BaseModel):
    total_sessions: int
    active_sessions: int
    utilization_percentage: int


class ProgramSessionCount(BaseModel):
    program_name: str
    total_sessions: int
    active_sessions: int


class ScheduleStatsResponse(BaseModel):
    """Aggregates over the sessions matching the filters.

    ``capacity_utilization`` is the mean of per-session enrollment/capacity,
    as a whole percentage. Workload and program counts are keyed by id,
    facility usage by facility name, peak hours by "HH:00" of active sessions.
    """

    total_sessions: int
    active_sessions: int
    cancelled_sessions: int
    total_capacity: int
    total_enrollment: int
    capacity_utilization: int
    attendance_marked: int
    sessions_by_day: dict[DayOfWeek, int]
    coach_workload: dict[str, CoachWorkload]
    facility_usage: dict[str, FacilityUsage]
    peak_hours: dict[str, int]
    sessions_by_program: dict[str, ProgramSessionCount]


# ==================== Reminders ====================


class ReminderRequest(BaseModel):
    # Sessions carry one sent-flag per window
    hours_ahead: Literal[24, 1] = 24


class ReminderResponse(BaseModel):
    hours_ahead: int
    notifications: FanoutSummary


# ==================== Waitlist ====================


class WaitlistCreate(BaseModel):
    """Schema for adding a player to a program waitlist."""

    player_id: UUID
    parent_id: UUID | None = None
    notes: str | None = None


class WaitlistStatusUpdate(BaseModel):
    status: WaitlistStatus
    notes: str | None = None


class WaitlistResponse(BaseModel):
    """Schema for waitlist entry response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    player_id: UUID
    program_id: UUID
    branch_id: UUID
    parent_id: UUID | None
    position: int
    status: WaitlistStatus
    notified_at: dt.datetime | None
    expires_at: dt.datetime | None
    enrolled_at: dt.datetime | None
    notes: str | None
    created_at: dt.datetime


class WaitlistProcessResponse(BaseModel):
    program_id: UUID
    promoted: list[WaitlistResponse]
    notifications: FanoutSummary
