"""Interval overlap checks for coaches and facilities."""
import uuid
from dataclasses import dataclass
from datetime import date, time

from sqlalchemy import Select, select

from .models import TrainingSession


def intervals_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open overlap of [start_a, end_a) and [start_b, end_b).

    Back-to-back intervals (end_a == start_b) do not overlap.
    """
    return start_a < end_b and start_b < end_a


def overlapping_sessions_query(
    session_date: date,
    start_time: time,
    end_time: time,
    exclude_session_id: uuid.UUID | None = None,
) -> Select:
    """Non-cancelled sessions on a date whose interval overlaps [start_time, end_time)."""
    query = select(TrainingSession).where(
        TrainingSession.date == session_date,
        TrainingSession.is_cancelled == False,  # noqa: E712
        TrainingSession.start_time < end_time,
        TrainingSession.end_time > start_time,
    )
    if exclude_session_id is not None:
        query = query.where(TrainingSession.id != exclude_session_id)
    return query.order_by(TrainingSession.start_time)


@dataclass(frozen=True)
class ConflictSummary:
    """Detached view of a conflicting session, safe to return after rollback."""

    id: uuid.UUID
    program_id: uuid.UUID
    program_name: str | None
    program_name_ar: str | None
    coach_id: uuid.UUID
    date: date
    start_time: time
    end_time: time
    facility: str | None

    @classmethod
    def from_session(cls, session: TrainingSession) -> "ConflictSummary":
        program = session.program
        return cls(
            id=session.id,
            program_id=session.program_id,
            program_name=program.name if program else None,
            program_name_ar=program.name_ar if program else None,
            coach_id=session.coach_id,
            date=session.date,
            start_time=session.start_time,
            end_time=session.end_time,
            facility=session.facility,
        )


def summarize(sessions: list[TrainingSession]) -> list[ConflictSummary]:
    return [ConflictSummary.from_session(s) for s in sessions]


def conflict_payload(
    coach_conflicts: list[ConflictSummary],
    facility_conflicts: list[ConflictSummary],
) -> dict[str, list[dict]]:
    """JSON-ready conflict lists for error responses."""

    def _row(c: ConflictSummary) -> dict:
        return {
            "id": str(c.id),
            "program_id": str(c.program_id),
            "program_name": c.program_name,
            "program_name_ar": c.program_name_ar,
            "coach_id": str(c.coach_id),
            "date": c.date.isoformat(),
            "start_time": c.start_time.isoformat(),
            "end_time": c.end_time.isoformat(),
            "facility": c.facility,
        }

    return {
        "coach": [_row(c) for c in coach_conflicts],
        "facility": [_row(c) for c in facility_conflicts],
    }
