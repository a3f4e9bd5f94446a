"""Schedule router for training sessions, recurrence, reminders and waitlists."""
from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from academy.config.database import get_db
from academy.core.exceptions import ForbiddenError
from academy.domains.auth.dependencies import (
    ADMIN_ROLES,
    MANAGER_ROLES,
    CurrentUser,
    ScheduleManager,
    ensure_branch_access,
    require_roles,
)
from academy.domains.notifications.fanout import FanoutReport
from academy.domains.users.models import User, UserRole

from .conflicts import summarize
from .models import WaitlistStatus
from .schemas import (
    CoachWeekResponse,
    ConflictResponse,
    DraftSessionResponse,
    FanoutSummary,
    RecurrenceRequest,
    RecurrenceResponse,
    ReminderRequest,
    ReminderResponse,
    ScheduleStatsResponse,
    SessionCancel,
    SessionChangeResponse,
    SessionCreate,
    SessionDraft,
    SessionResponse,
    SessionUpdate,
    ValidationResponse,
    WaitlistCreate,
    WaitlistProcessResponse,
    WaitlistResponse,
    WaitlistStatusUpdate,
)
from .service import ScheduleService, SessionChangeResult
from .waitlist import WaitlistService

router = APIRouter(prefix="/schedule", tags=["schedule"])


def _fanout_summary(report: FanoutReport) -> FanoutSummary:
    return FanoutSummary(**report.summary())


def _change_to_response(result: SessionChangeResult) -> SessionChangeResponse:
    return SessionChangeResponse(
        session_id=result.session_id,
        session=SessionResponse.model_validate(result.session) if result.session else None,
        recurring_created=result.recurring_created,
        recurring_skipped=result.recurring_skipped,
        notifications=_fanout_summary(result.notifications),
    )


# ==================== Sessions ====================


@router.post("/validate", response_model=ValidationResponse)
async def validate_session(
    request: SessionDraft,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ValidationResponse:
    """Check a slot for coach and facility conflicts without saving anything."""
    ensure_branch_access(current_user, request.branch_id)
    validation = await ScheduleService(db).validate_session(request)
    return ValidationResponse(
        is_valid=validation.is_valid,
        coach_conflicts=[
            ConflictResponse.model_validate(c) for c in summarize(validation.coach_conflicts)
        ],
        facility_conflicts=[
            ConflictResponse.model_validate(c) for c in summarize(validation.facility_conflicts)
        ],
    )


@router.post("/sessions", response_model=SessionChangeResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: SessionCreate,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionChangeResponse:
    """Create a training session and notify enrolled families."""
    service = ScheduleService(db)
    program = await service.get_program(request.program_id)
    ensure_branch_access(current_user, program.branch_id)
    result = await service.create_session(request, current_user)
    return _change_to_response(result)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionResponse:
    session = await ScheduleService(db).get_session(session_id)
    return SessionResponse.model_validate(session)


@router.put("/sessions/{session_id}", response_model=SessionChangeResponse)
async def update_session(
    session_id: UUID,
    request: SessionUpdate,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionChangeResponse:
    """Update a session. Moving it re-checks conflicts and notifies families."""
    service = ScheduleService(db)
    session = await service.get_session(session_id)
    ensure_branch_access(current_user, session.branch_id)
    result = await service.update_session(session_id, request, current_user)
    return _change_to_response(result)


@router.post("/sessions/{session_id}/cancel", response_model=SessionChangeResponse)
async def cancel_session(
    session_id: UUID,
    request: SessionCancel,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionChangeResponse:
    """Cancel a session, or delete it outright with ``permanent``."""
    service = ScheduleService(db)
    session = await service.get_session(session_id)
    ensure_branch_access(current_user, session.branch_id)
    result = await service.cancel_session(
        session_id,
        current_user,
        reason=request.reason,
        permanent=request.permanent,
    )
    return _change_to_response(result)


@router.get("/branches/{branch_id}/sessions", response_model=list[SessionResponse])
async def list_branch_sessions(
    branch_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    start_date: date | None = None,
    end_date: date | None = None,
    program_id: UUID | None = None,
    coach_id: UUID | None = None,
    include_cancelled: bool = True,
) -> list[SessionResponse]:
    ensure_branch_access(current_user, branch_id)
    sessions = await ScheduleService(db).list_branch_sessions(
        branch_id,
        start_date=start_date,
        end_date=end_date,
        program_id=program_id,
        coach_id=coach_id,
        include_cancelled=include_cancelled,
    )
    return [SessionResponse.model_validate(s) for s in sessions]


# ==================== Recurrence ====================


@router.post("/programs/{program_id}/preview", response_model=list[DraftSessionResponse])
async def preview_recurring_sessions(
    program_id: UUID,
    request: RecurrenceRequest,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[DraftSessionResponse]:
    """Expand the program template without saving."""
    service = ScheduleService(db)
    program = await service.get_program(program_id)
    ensure_branch_access(current_user, program.branch_id)
    drafts = await service.expand_recurrence(
        program_id,
        start_date=request.start_date,
        end_date=request.end_date,
        weeks_ahead=request.weeks_ahead,
    )
    return [DraftSessionResponse.model_validate(d) for d in drafts]


@router.post(
    "/programs/{program_id}/generate",
    response_model=RecurrenceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def generate_recurring_sessions(
    program_id: UUID,
    request: RecurrenceRequest,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RecurrenceResponse:
    """Materialize the program template into sessions."""
    service = ScheduleService(db)
    program = await service.get_program(program_id)
    ensure_branch_access(current_user, program.branch_id)
    result = await service.generate_recurring_sessions(
        program_id,
        start_date=request.start_date,
        end_date=request.end_date,
        weeks_ahead=request.weeks_ahead,
        validate=request.validate_conflicts,
    )
    return RecurrenceResponse(
        created=[SessionResponse.model_validate(s) for s in result.created],
        skipped=[DraftSessionResponse.model_validate(s) for s in result.skipped],
    )


# ==================== Views ====================


@router.get("/coaches/{coach_id}/week", response_model=CoachWeekResponse)
async def get_coach_week(
    coach_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    start_date: date | None = None,
) -> CoachWeekResponse:
    """A coach's Sunday-to-Saturday week. Coaches see their own; managers any in their branch."""
    if current_user.role not in MANAGER_ROLES and current_user.id != coach_id:
        raise ForbiddenError("You do not have access to this coach's schedule")
    service = ScheduleService(db)
    coach = await service.get_coach(coach_id)
    ensure_branch_access(current_user, coach.branch_id)
    week = await service.get_coach_week(coach_id, start_date)
    return CoachWeekResponse(
        coach_id=week.coach.id,
        coach_name=week.coach.full_name,
        week_start=week.week_start,
        week_end=week.week_end,
        sessions=[SessionResponse.model_validate(s) for s in week.sessions],
    )


@router.get("/stats", response_model=ScheduleStatsResponse)
async def get_schedule_stats(
    current_user: Annotated[User, Depends(require_roles(*MANAGER_ROLES, UserRole.ACCOUNTANT))],
    db: Annotated[AsyncSession, Depends(get_db)],
    branch_id: UUID | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> ScheduleStatsResponse:
    """Schedule statistics; branch admins only ever see their own branch."""
    if current_user.role == UserRole.BRANCH_ADMIN:
        branch_id = branch_id or current_user.branch_id
        ensure_branch_access(current_user, branch_id)
    stats = await ScheduleService(db).get_schedule_stats(branch_id, start_date, end_date)
    return ScheduleStatsResponse(**stats)


# ==================== Reminders ====================


@router.post("/reminders", response_model=ReminderResponse)
async def send_reminders(
    request: ReminderRequest,
    current_user: Annotated[User, Depends(require_roles(*ADMIN_ROLES))],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ReminderResponse:
    """Run a reminder sweep now (normally triggered by the scheduler)."""
    report = await ScheduleService(db).send_session_reminders(request.hours_ahead)
    return ReminderResponse(hours_ahead=request.hours_ahead, notifications=_fanout_summary(report))


# ==================== Waitlist ====================


@router.get("/programs/{program_id}/waitlist", response_model=list[WaitlistResponse])
async def get_program_waitlist(
    program_id: UUID,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: Annotated[WaitlistStatus | None, Query(alias="status")] = None,
) -> list[WaitlistResponse]:
    program = await ScheduleService(db).get_program(program_id)
    ensure_branch_access(current_user, program.branch_id)
    entries = await WaitlistService(db).list_entries(program_id, status_filter)
    return [WaitlistResponse.model_validate(e) for e in entries]


@router.post(
    "/programs/{program_id}/waitlist",
    response_model=WaitlistResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_to_waitlist(
    program_id: UUID,
    request: WaitlistCreate,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WaitlistResponse:
    """Queue a player for a full program.

    Parents may queue their own children; managers any player in their branch.
    """
    entry = await WaitlistService(db).add_to_waitlist(
        program_id,
        request.player_id,
        parent_id=request.parent_id,
        notes=request.notes,
        actor=current_user,
    )
    return WaitlistResponse.model_validate(entry)


@router.post("/programs/{program_id}/waitlist/process", response_model=WaitlistProcessResponse)
async def process_waitlist(
    program_id: UUID,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WaitlistProcessResponse:
    """Offer any open spots to the front of the queue."""
    program = await ScheduleService(db).get_program(program_id)
    ensure_branch_access(current_user, program.branch_id)
    result = await WaitlistService(db).process_waitlist(program_id)
    return WaitlistProcessResponse(
        program_id=program_id,
        promoted=[WaitlistResponse.model_validate(e) for e in result.promoted],
        notifications=_fanout_summary(result.notifications),
    )


@router.patch("/waitlist/{entry_id}", response_model=WaitlistResponse)
async def update_waitlist_status(
    entry_id: UUID,
    request: WaitlistStatusUpdate,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WaitlistResponse:
    service = WaitlistService(db)
    entry = await service.get_entry(entry_id)
    ensure_branch_access(current_user, entry.branch_id)
    entry, _ = await service.update_waitlist_status(entry_id, request.status, request.notes)
    return WaitlistResponse.model_validate(entry)


@router.delete("/waitlist/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_from_waitlist(
    entry_id: UUID,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    service = WaitlistService(db)
    entry = await service.get_entry(entry_id)
    ensure_branch_access(current_user, entry.branch_id)
    await service.remove_from_waitlist(entry_id)
