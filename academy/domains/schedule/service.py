"""Training session scheduling: conflicts, recurrence, lifecycle and reminders."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.config.settings import settings
from academy.core.clock import utc_today, utcnow
from academy.core.exceptions import NotFoundError, ScheduleConflictError, ValidationError
from academy.domains.branches.models import Branch
from academy.domains.notifications.fanout import FanoutReport, Recipient
from academy.domains.notifications.messages import (
    preferred_language,
    session_change_message,
    session_reminder_message,
)
from academy.domains.notifications.models import NotificationType
from academy.domains.notifications.service import NotificationService
from academy.domains.programs.models import Player, Program
from academy.domains.users.models import User, UserRole

from .conflicts import overlapping_sessions_query, summarize
from .models import DayOfWeek, TrainingSession
from .schemas import SessionCreate, SessionDraft, SessionUpdate

logger = logging.getLogger(__name__)

# date.weekday(): Monday == 0
WEEKDAYS = [
    DayOfWeek.MONDAY,
    DayOfWeek.TUESDAY,
    DayOfWeek.WEDNESDAY,
    DayOfWeek.THURSDAY,
    DayOfWeek.FRIDAY,
    DayOfWeek.SATURDAY,
    DayOfWeek.SUNDAY,
]

CHANGE_NOTIFICATION_TYPES = {
    "created": NotificationType.SESSION_CREATED,
    "rescheduled": NotificationType.SESSION_RESCHEDULED,
    "cancelled": NotificationType.SESSION_CANCELLED,
    "updated": NotificationType.SESSION_UPDATED,
}

# Change types that also go out by SMS
SMS_CHANGE_TYPES = {"cancelled", "rescheduled"}

# Reminder window in hours -> the session flag it sets
REMINDER_FLAGS = {24: "reminder_sent_24h", 1: "reminder_sent_1h"}


@dataclass
class SessionValidation:
    """Outcome of checking a draft against existing sessions."""

    coach_conflicts: list[TrainingSession] = field(default_factory=list)
    facility_conflicts: list[TrainingSession] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.coach_conflicts and not self.facility_conflicts


@dataclass
class RecurrenceResult:
    created: list[TrainingSession] = field(default_factory=list)
    skipped: list[TrainingSession] = field(default_factory=list)


@dataclass
class SessionChangeResult:
    """A session mutation plus the delivery report of its fan-out."""

    session_id: uuid.UUID
    session: TrainingSession | None
    notifications: FanoutReport
    recurring_created: int = 0
    recurring_skipped: int = 0


@dataclass
class CoachWeek:
    coach: User
    week_start: date
    week_end: date
    sessions: list[TrainingSession] = field(default_factory=list)


@dataclass(frozen=True)
class _SessionSnapshot:
    """Plain copy of the fields fan-out needs from a session."""

    id: uuid.UUID
    program_id: uuid.UUID
    coach_id: uuid.UUID
    program_name: str
    program_name_ar: str | None
    date: date
    start_time: time


def day_of_week(value: date) -> DayOfWeek:
    """Weekday of a calendar date, independent of any timezone."""
    return WEEKDAYS[value.weekday()]


def week_start_for(value: date) -> date:
    """The Sunday on or before ``value``; academy weeks run Sunday to Saturday."""
    return value - timedelta(days=(value.weekday() + 1) % 7)


def parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value))


class ScheduleService:
    """Service for training session scheduling."""

    def __init__(self, db: AsyncSession, notifier: NotificationService | None = None):
        self.db = db
        self.notifier = notifier or NotificationService(db)

    # ==================== Conflicts ====================

    async def check_coach_conflicts(
        self,
        coach_id: uuid.UUID,
        session_date: date,
        start_time: time,
        end_time: time,
        exclude_session_id: uuid.UUID | None = None,
    ) -> list[TrainingSession]:
        """Sessions the coach already runs that overlap the given slot."""
        query = overlapping_sessions_query(
            session_date, start_time, end_time, exclude_session_id
        ).where(TrainingSession.coach_id == coach_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def check_facility_conflicts(
        self,
        branch_id: uuid.UUID,
        facility: str | None,
        session_date: date,
        start_time: time,
        end_time: time,
        exclude_session_id: uuid.UUID | None = None,
    ) -> list[TrainingSession]:
        """Sessions holding the same branch facility during the given slot.

        Without a facility there is nothing to contend for.
        """
        if not facility:
            return []
        query = overlapping_sessions_query(
            session_date, start_time, end_time, exclude_session_id
        ).where(
            TrainingSession.branch_id == branch_id,
            TrainingSession.facility == facility,
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def validate_session(self, draft: SessionDraft) -> SessionValidation:
        """Run both conflict checks. Advisory only: nothing is locked or written."""
        coach_conflicts = await self.check_coach_conflicts(
            draft.coach_id,
            draft.date,
            draft.start_time,
            draft.end_time,
            draft.session_id,
        )
        facility_conflicts = await self.check_facility_conflicts(
            draft.branch_id,
            draft.facility,
            draft.date,
            draft.start_time,
            draft.end_time,
            draft.session_id,
        )
        return SessionValidation(
            coach_conflicts=coach_conflicts,
            facility_conflicts=facility_conflicts,
        )

    async def _lock_resources(self, coach_id: uuid.UUID, branch_id: uuid.UUID) -> None:
        """Take row locks on the coach, then the branch, for the rest of the transaction.

        Concurrent writers for the same coach or the same branch facilities
        queue here, so validate-then-write cannot interleave.
        """
        result = await self.db.execute(
            select(User.id).where(User.id == coach_id).with_for_update()
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Coach not found")

        result = await self.db.execute(
            select(Branch.id).where(Branch.id == branch_id).with_for_update()
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Branch not found")

    async def _reject(self, validation: SessionValidation) -> None:
        coach = summarize(validation.coach_conflicts)
        facility = summarize(validation.facility_conflicts)
        await self.db.rollback()
        raise ScheduleConflictError("Scheduling conflict detected", coach, facility)

    # ==================== Recurrence ====================

    async def get_program(self, program_id: uuid.UUID) -> Program:
        program = await self.db.get(Program, program_id)
        if not program:
            raise NotFoundError("Program not found")
        return program

    async def expand_recurrence(
        self,
        program_id: uuid.UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        weeks_ahead: int | None = None,
    ) -> list[TrainingSession]:
        """Expand a program's weekly template into unsaved sessions.

        Walks every date in [start_date, end_date] inclusive. Drafts are not
        conflict-checked and are not added to the database session.

        Raises:
            NotFoundError: if the program is missing or has no template.
            ValidationError: if a template slot is malformed.
        """
        program = await self.get_program(program_id)
        if not program.schedule:
            raise NotFoundError("Program not found or has no schedule defined")

        start = start_date or utc_today()
        weeks = weeks_ahead or settings.RECURRENCE_WEEKS_AHEAD
        end = end_date or start + timedelta(weeks=weeks)

        slots_by_day: dict[str, list[dict]] = {}
        for entry in program.schedule:
            day = str(entry.get("day", "")).lower()
            slots_by_day.setdefault(day, []).extend(entry.get("sessions") or [])

        drafts = []
        current = start
        while current <= end:
            weekday = day_of_week(current)
            for slot in slots_by_day.get(weekday.value, []):
                drafts.append(self._draft_from_slot(program, slot, current, weekday))
            current += timedelta(days=1)

        return drafts

    def _draft_from_slot(
        self,
        program: Program,
        slot: dict,
        session_date: date,
        weekday: DayOfWeek,
    ) -> TrainingSession:
        try:
            coach_id = uuid.UUID(str(slot["coach_id"]))
            start_time = parse_time(slot["start_time"])
            end_time = parse_time(slot["end_time"])
        except (KeyError, ValueError) as e:
            raise ValidationError(f"Invalid schedule template entry: {e}")
        if start_time >= end_time:
            raise ValidationError("Schedule template entry ends before it starts")

        return TrainingSession(
            program_id=program.id,
            branch_id=program.branch_id,
            coach_id=coach_id,
            date=session_date,
            day_of_week=weekday,
            start_time=start_time,
            end_time=end_time,
            facility=slot.get("facility") or None,
            max_capacity=slot.get("max_capacity") or program.capacity,
            current_enrollment=program.current_enrollment,
            is_recurring=True,
        )

    async def generate_recurring_sessions(
        self,
        program_id: uuid.UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        weeks_ahead: int | None = None,
        validate: bool = False,
    ) -> RecurrenceResult:
        """Expand and persist a program's template, committing each session.

        A failure part-way leaves the sessions committed so far in place.
        With ``validate`` set, conflicting instances are skipped instead of
        written.
        """
        drafts = await self.expand_recurrence(program_id, start_date, end_date, weeks_ahead)
        result = RecurrenceResult()

        for draft in drafts:
            if validate:
                await self._lock_resources(draft.coach_id, draft.branch_id)
                validation = await self.validate_session(
                    SessionDraft(
                        coach_id=draft.coach_id,
                        branch_id=draft.branch_id,
                        date=draft.date,
                        start_time=draft.start_time,
                        end_time=draft.end_time,
                        facility=draft.facility,
                    )
                )
                if not validation.is_valid:
                    # Release the coach and branch locks before the next instance
                    await self.db.commit()
                    result.skipped.append(draft)
                    continue

            self.db.add(draft)
            try:
                await self.db.commit()
            except SQLAlchemyError:
                await self.db.rollback()
                logger.error(
                    "Recurring session generation stopped at %s after %d sessions",
                    draft.date,
                    len(result.created),
                )
                raise
            result.created.append(draft)

        # Ends the read transaction when the window held no template days
        await self.db.commit()
        logger.info(
            "Generated %d recurring sessions for program %s (%d skipped)",
            len(result.created),
            program_id,
            len(result.skipped),
        )
        return result

    # ==================== Lifecycle ====================

    async def get_session(self, session_id: uuid.UUID) -> TrainingSession:
        session = await self.db.get(TrainingSession, session_id)
        if not session:
            raise NotFoundError("Training session not found")
        return session

    async def list_branch_sessions(
        self,
        branch_id: uuid.UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        program_id: uuid.UUID | None = None,
        coach_id: uuid.UUID | None = None,
        include_cancelled: bool = True,
    ) -> list[TrainingSession]:
        query = select(TrainingSession).where(TrainingSession.branch_id == branch_id)
        if start_date:
            query = query.where(TrainingSession.date >= start_date)
        if end_date:
            query = query.where(TrainingSession.date <= end_date)
        if program_id:
            query = query.where(TrainingSession.program_id == program_id)
        if coach_id:
            query = query.where(TrainingSession.coach_id == coach_id)
        if not include_cancelled:
            query = query.where(TrainingSession.is_cancelled == False)  # noqa: E712
        query = query.order_by(TrainingSession.date, TrainingSession.start_time)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_session(self, data: SessionCreate, actor: User) -> SessionChangeResult:
        """Validate and create a session, optionally repeating it weekly.

        Raises:
            NotFoundError: if the program, coach or branch is missing.
            ScheduleConflictError: if the first occurrence collides.
        """
        program = await self.get_program(data.program_id)
        await self._lock_resources(data.coach_id, program.branch_id)

        validation = await self.validate_session(
            SessionDraft(
                coach_id=data.coach_id,
                branch_id=program.branch_id,
                date=data.date,
                start_time=data.start_time,
                end_time=data.end_time,
                facility=data.facility,
            )
        )
        if not validation.is_valid:
            await self._reject(validation)

        capacity = data.max_capacity or program.capacity
        session = TrainingSession(
            program_id=program.id,
            branch_id=program.branch_id,
            coach_id=data.coach_id,
            date=data.date,
            day_of_week=day_of_week(data.date),
            start_time=data.start_time,
            end_time=data.end_time,
            facility=data.facility,
            max_capacity=capacity,
            current_enrollment=program.current_enrollment,
            is_recurring=data.is_recurring or data.repeat_weekly,
            notes=data.notes,
        )
        self.db.add(session)
        await self.db.flush()

        created = skipped = 0
        if data.repeat_weekly:
            created, skipped = await self._add_weekly_copies(session, program)

        await self.db.commit()
        logger.info(
            "Session %s created by %s (%d weekly copies, %d skipped)",
            session.id,
            actor.id,
            created,
            skipped,
        )

        snapshot = self._snapshot(session, program)
        report = await self.notify_enrolled_players(snapshot, "created")
        await self.db.refresh(session)

        return SessionChangeResult(
            session_id=session.id,
            session=session,
            notifications=report,
            recurring_created=created,
            recurring_skipped=skipped,
        )

    async def _add_weekly_copies(
        self,
        session: TrainingSession,
        program: Program,
    ) -> tuple[int, int]:
        """Repeat a session every 7 days until the program ends (or for a year)."""
        default_end = session.date + timedelta(weeks=settings.RECURRING_SESSION_MAX_WEEKS)
        end = program.end_date if program.end_date and program.end_date > session.date else default_end

        created = skipped = 0
        next_date = session.date + timedelta(weeks=1)
        while next_date <= end:
            validation = await self.validate_session(
                SessionDraft(
                    coach_id=session.coach_id,
                    branch_id=session.branch_id,
                    date=next_date,
                    start_time=session.start_time,
                    end_time=session.end_time,
                    facility=session.facility,
                )
            )
            if validation.is_valid:
                self.db.add(
                    TrainingSession(
                        program_id=session.program_id,
                        branch_id=session.branch_id,
                        coach_id=session.coach_id,
                        date=next_date,
                        day_of_week=day_of_week(next_date),
                        start_time=session.start_time,
                        end_time=session.end_time,
                        facility=session.facility,
                        max_capacity=session.max_capacity,
                        current_enrollment=session.current_enrollment,
                        is_recurring=True,
                        notes=session.notes,
                    )
                )
                await self.db.flush()
                created += 1
            else:
                skipped += 1
            next_date += timedelta(weeks=1)
        return created, skipped

    async def update_session(
        self,
        session_id: uuid.UUID,
        data: SessionUpdate,
        actor: User,
    ) -> SessionChangeResult:
        """Apply supplied changes, re-validating when the slot moves.

        Parents are told "rescheduled" when the date or start time changed,
        otherwise "updated".
        """
        session = await self.get_session(session_id)
        changes = data.model_dump(exclude_unset=True)

        old_date = session.date
        old_time = session.start_time
        coach_id = changes.get("coach_id") or session.coach_id
        new_date = changes.get("date") or session.date
        start_time = changes.get("start_time") or session.start_time
        end_time = changes.get("end_time") or session.end_time
        facility = changes["facility"] if "facility" in changes else session.facility

        if start_time >= end_time:
            raise ValidationError("End time must be after start time")

        slot_fields = {"coach_id", "date", "start_time", "end_time", "facility"}
        if slot_fields & changes.keys():
            await self._lock_resources(coach_id, session.branch_id)
            validation = await self.validate_session(
                SessionDraft(
                    coach_id=coach_id,
                    branch_id=session.branch_id,
                    date=new_date,
                    start_time=start_time,
                    end_time=end_time,
                    facility=facility,
                    session_id=session.id,
                )
            )
            if not validation.is_valid:
                await self._reject(validation)

        session.coach_id = coach_id
        session.date = new_date
        session.day_of_week = day_of_week(new_date)
        session.start_time = start_time
        session.end_time = end_time
        session.facility = facility
        if changes.get("max_capacity"):
            session.max_capacity = changes["max_capacity"]
        if "notes" in changes:
            session.notes = changes["notes"]

        await self.db.commit()
        logger.info("Session %s updated by %s", session.id, actor.id)

        program = await self.get_program(session.program_id)
        snapshot = self._snapshot(session, program)
        if new_date != old_date or start_time != old_time:
            report = await self.notify_enrolled_players(
                snapshot,
                "rescheduled",
                {
                    "old_date": old_date,
                    "old_time": old_time,
                    "new_date": new_date,
                    "new_time": start_time,
                },
            )
        else:
            report = await self.notify_enrolled_players(snapshot, "updated")
        await self.db.refresh(session)

        return SessionChangeResult(session_id=session.id, session=session, notifications=report)

    async def cancel_session(
        self,
        session_id: uuid.UUID,
        actor: User,
        reason: str | None = None,
        permanent: bool = False,
    ) -> SessionChangeResult:
        """Cancel a session (soft) or delete it (permanent), then tell parents.

        Raises:
            NotFoundError: if the session does not exist.
            ValidationError: if a soft cancel targets an already-cancelled session.
        """
        session = await self.get_session(session_id)
        already_cancelled = session.is_cancelled
        if already_cancelled and not permanent:
            raise ValidationError("Session is already cancelled")

        program = await self.get_program(session.program_id)
        snapshot = self._snapshot(session, program)

        if permanent:
            await self.db.delete(session)
        else:
            session.is_cancelled = True
            session.cancellation_reason = reason
            session.cancelled_by = actor.id
            session.cancelled_at = utcnow()
        await self.db.commit()
        logger.info(
            "Session %s %s by %s",
            snapshot.id,
            "deleted" if permanent else "cancelled",
            actor.id,
        )

        if already_cancelled:
            report = FanoutReport()
        else:
            report = await self.notify_enrolled_players(snapshot, "cancelled", {"reason": reason})

        if permanent:
            return SessionChangeResult(session_id=snapshot.id, session=None, notifications=report)

        await self.db.refresh(session)
        return SessionChangeResult(session_id=session.id, session=session, notifications=report)

    # ==================== Fan-out ====================

    @staticmethod
    def _snapshot(session: TrainingSession, program: Program) -> _SessionSnapshot:
        return _SessionSnapshot(
            id=session.id,
            program_id=session.program_id,
            coach_id=session.coach_id,
            program_name=program.name,
            program_name_ar=program.name_ar,
            date=session.date,
            start_time=session.start_time,
        )

    async def enrolled_recipients(self, program_id: uuid.UUID) -> list[Recipient]:
        """Parents of the program's active players, one entry per player."""
        result = await self.db.execute(
            select(Player).where(
                Player.program_id == program_id,
                Player.is_active == True,  # noqa: E712
                Player.parent_id.is_not(None),
            )
        )
        recipients = []
        for player in result.scalars().all():
            parent = player.parent
            if not parent:
                continue
            recipients.append(
                Recipient(
                    user_id=parent.id,
                    phone=parent.phone,
                    language=preferred_language(parent),
                    player_id=player.id,
                    player_name=player.first_name,
                    player_name_ar=player.first_name_ar or player.first_name,
                )
            )
        return recipients

    async def notify_enrolled_players(
        self,
        snapshot: _SessionSnapshot,
        change_type: str,
        extra: dict[str, Any] | None = None,
    ) -> FanoutReport:
        """Tell every enrolled player's parent about a session change.

        In-app for every change, SMS as well for cancellations and
        reschedules. Failures are recorded in the report, never raised.
        """
        extra = extra or {}
        report = FanoutReport()
        recipients = await self.enrolled_recipients(snapshot.program_id)
        if not recipients:
            return report

        content = session_change_message(
            change_type,
            snapshot.program_name,
            snapshot.program_name_ar,
            snapshot.date,
            snapshot.start_time,
            reason=extra.get("reason"),
            new_date=extra.get("new_date"),
            new_time=extra.get("new_time"),
        )
        notification_type = CHANGE_NOTIFICATION_TYPES.get(
            change_type, NotificationType.SESSION_UPDATED
        )
        extra_data = {key: _jsonable(value) for key, value in extra.items()}

        for recipient in recipients:
            data = {
                "session_id": str(snapshot.id),
                "program_id": str(snapshot.program_id),
                "player_id": str(recipient.player_id),
                "change_type": change_type,
                **extra_data,
            }
            await self.notifier.notify(report, recipient, notification_type, content, data)
            if change_type in SMS_CHANGE_TYPES:
                await self.notifier.text(report, recipient, content)

        logger.info(
            "Session %s %s fan-out: %s",
            snapshot.id,
            change_type,
            report.summary(),
        )
        return report

    # ==================== Views ====================

    async def get_coach(self, coach_id: uuid.UUID) -> User:
        coach = await self.db.get(User, coach_id)
        if not coach or coach.role != UserRole.COACH:
            raise NotFoundError("Coach not found")
        return coach

    async def get_coach_week(
        self,
        coach_id: uuid.UUID,
        start_date: date | None = None,
    ) -> CoachWeek:
        """Every session the coach runs in the Sunday-to-Saturday week of ``start_date``.

        Cancelled sessions are included so the coach sees what was dropped.
        """
        coach = await self.get_coach(coach_id)
        week_start = week_start_for(start_date or utc_today())
        week_end = week_start + timedelta(days=6)

        result = await self.db.execute(
            select(TrainingSession)
            .where(
                TrainingSession.coach_id == coach.id,
                TrainingSession.date >= week_start,
                TrainingSession.date <= week_end,
            )
            .order_by(TrainingSession.date, TrainingSession.start_time)
        )
        return CoachWeek(
            coach=coach,
            week_start=week_start,
            week_end=week_end,
            sessions=list(result.scalars().all()),
        )

    async def get_schedule_stats(
        self,
        branch_id: uuid.UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict:
        """Session counts, capacity use, coach workload and facility usage."""
        query = select(TrainingSession)
        if branch_id:
            query = query.where(TrainingSession.branch_id == branch_id)
        if start_date:
            query = query.where(TrainingSession.date >= start_date)
        if end_date:
            query = query.where(TrainingSession.date <= end_date)
        sessions = list((await self.db.execute(query)).scalars().all())

        coaches: dict[uuid.UUID, User] = {}
        coach_ids = {s.coach_id for s in sessions}
        if coach_ids:
            result = await self.db.execute(select(User).where(User.id.in_(coach_ids)))
            coaches = {coach.id: coach for coach in result.scalars().all()}

        sized = [s for s in sessions if s.max_capacity > 0]
        utilization = (
            round(sum(s.current_enrollment / s.max_capacity for s in sized) / len(sized) * 100)
            if sized
            else 0
        )

        sessions_by_day: dict[str, int] = {}
        coach_workload: dict[str, dict] = {}
        facility_usage: dict[str, dict] = {}
        peak_hours: dict[str, int] = {}
        sessions_by_program: dict[str, dict] = {}

        for session in sessions:
            active = not session.is_cancelled
            day = session.day_of_week.value
            sessions_by_day[day] = sessions_by_day.get(day, 0) + 1

            coach = coaches.get(session.coach_id)
            if coach:
                workload = coach_workload.setdefault(
                    str(coach.id),
                    {
                        "coach_name": coach.full_name,
                        "total_sessions": 0,
                        "active_sessions": 0,
                        "cancelled_sessions": 0,
                        "total_hours": 0.0,
                    },
                )
                workload["total_sessions"] += 1
                workload["active_sessions" if active else "cancelled_sessions"] += 1
                workload["total_hours"] += _hours_between(session.start_time, session.end_time)

            if session.facility:
                usage = facility_usage.setdefault(
                    session.facility,
                    {"total_sessions": 0, "active_sessions": 0, "utilization_percentage": 0},
                )
                usage["total_sessions"] += 1
                usage["active_sessions"] += int(active)

            if active:
                slot = f"{session.start_time.hour:02d}:00"
                peak_hours[slot] = peak_hours.get(slot, 0) + 1

            program = session.program
            if program:
                counts = sessions_by_program.setdefault(
                    str(program.id),
                    {"program_name": program.name, "total_sessions": 0, "active_sessions": 0},
                )
                counts["total_sessions"] += 1
                counts["active_sessions"] += int(active)

        for usage in facility_usage.values():
            usage["utilization_percentage"] = round(
                usage["active_sessions"] / usage["total_sessions"] * 100
            )
        for workload in coach_workload.values():
            workload["total_hours"] = round(workload["total_hours"], 2)

        return {
            "total_sessions": len(sessions),
            "active_sessions": sum(1 for s in sessions if not s.is_cancelled),
            "cancelled_sessions": sum(1 for s in sessions if s.is_cancelled),
            "total_capacity": sum(s.max_capacity for s in sessions),
            "total_enrollment": sum(s.current_enrollment for s in sessions),
            "capacity_utilization": utilization,
            "attendance_marked": sum(1 for s in sessions if s.attendance_marked),
            "sessions_by_day": sessions_by_day,
            "coach_workload": coach_workload,
            "facility_usage": facility_usage,
            "peak_hours": peak_hours,
            "sessions_by_program": sessions_by_program,
        }

    # ==================== Reminders ====================

    async def send_session_reminders(
        self,
        hours_ahead: int = 24,
        now: datetime | None = None,
    ) -> FanoutReport:
        """SMS parents about sessions on the date ``hours_ahead`` from now.

        Each session is marked for its window (24h or 1h) after all of its
        players were processed, so repeated sweeps send at most once.

        Raises:
            ValidationError: if ``hours_ahead`` is not 24 or 1.
        """
        flag = REMINDER_FLAGS.get(hours_ahead)
        if flag is None:
            raise ValidationError("Reminders are sent 24 hours or 1 hour ahead")
        now = now or utcnow()
        target_date = (now + timedelta(hours=hours_ahead)).date()
        flag_column = getattr(TrainingSession, flag)

        result = await self.db.execute(
            select(TrainingSession).where(
                TrainingSession.date == target_date,
                TrainingSession.is_cancelled == False,  # noqa: E712
                flag_column == False,  # noqa: E712
            )
        )
        sessions = result.scalars().all()
        snapshots = []
        for session in sessions:
            program = session.program
            snapshots.append(
                _SessionSnapshot(
                    id=session.id,
                    program_id=session.program_id,
                    coach_id=session.coach_id,
                    program_name=program.name,
                    program_name_ar=program.name_ar,
                    date=session.date,
                    start_time=session.start_time,
                )
            )

        report = FanoutReport()
        for snapshot in snapshots:
            coach = await self.db.get(User, snapshot.coach_id)
            coach_name = coach.full_name if coach else ""
            coach_name_ar = coach.name_ar if coach else None

            for recipient in await self.enrolled_recipients(snapshot.program_id):
                if not recipient.phone:
                    continue
                content = session_reminder_message(
                    hours_ahead,
                    recipient.player_name,
                    recipient.player_name_ar,
                    snapshot.program_name,
                    snapshot.program_name_ar,
                    snapshot.date,
                    snapshot.start_time,
                    coach_name,
                    coach_name_ar,
                )
                await self.notifier.text(report, recipient, content)

            await self.db.execute(
                update(TrainingSession)
                .where(TrainingSession.id == snapshot.id)
                .values({flag: True})
            )
            await self.db.commit()

        logger.info(
            "%dh reminders: %d sessions, %s",
            hours_ahead,
            len(snapshots),
            report.summary(),
        )
        return report


def _hours_between(start: time, end: time) -> float:
    minutes = (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
    return minutes / 60


def _jsonable(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (date, time)):
        return value.isoformat()
    return value
