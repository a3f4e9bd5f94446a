"""Schedule models for training sessions and program waitlists."""
import datetime as dt
import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academy.config.database import Base
from academy.core.models import TimestampMixin, UUIDMixin


class DayOfWeek(str, enum.Enum):
    """Weekday names as used in program templates."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


class WaitlistStatus(str, enum.Enum):
    """Waitlist entry status."""

    WAITING = "waiting"
    NOTIFIED = "notified"  # Offered a spot, awaiting response
    ENROLLED = "enrolled"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class TrainingSession(Base, UUIDMixin, TimestampMixin):
    """A dated training slot for a program, run by one coach."""

    __tablename__ = "training_sessions"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_training_sessions_time_order"),
        Index("ix_training_sessions_coach_date", "coach_id", "date"),
        Index("ix_training_sessions_branch_facility_date", "branch_id", "facility", "date"),
    )

    program_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    branch_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    coach_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    day_of_week: Mapped[DayOfWeek] = mapped_column(
        Enum(DayOfWeek, create_constraint=False, native_enum=False),
        nullable=False,
    )
    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    facility: Mapped[str | None] = mapped_column(String(100), nullable=True)

    max_capacity: Mapped[int] = mapped_column(Integer, default=20, nullable=False)
    current_enrollment: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Cancellation
    is_cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    cancelled_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    attendance_marked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Reminder tracking
    reminder_sent_24h: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_sent_1h: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    program = relationship("Program", lazy="selectin")


class WaitlistEntry(Base, UUIDMixin, TimestampMixin):
    """A player's place in a program's waitlist queue."""

    __tablename__ = "waitlist"
    __table_args__ = (
        UniqueConstraint("player_id", "program_id", name="uq_waitlist_player_program"),
        Index("ix_waitlist_program_position", "program_id", "position"),
    )

    player_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
    )
    program_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=False,
    )
    branch_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[WaitlistStatus] = mapped_column(
        Enum(WaitlistStatus, create_constraint=False, native_enum=False),
        nullable=False,
        default=WaitlistStatus.WAITING,
        index=True,
    )
    notified_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    enrolled_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    player = relationship("Player", lazy="selectin")
    parent = relationship("User", foreign_keys=[parent_id], lazy="selectin")
