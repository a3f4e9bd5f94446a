"""Subscription and freeze models."""
import datetime as dt
import enum
import uuid

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academy.config.database import Base
from academy.core.models import TimestampMixin, UUIDMixin


class SubscriptionStatus(str, enum.Enum):
    """Subscription status."""

    ACTIVE = "active"
    PENDING = "pending"
    EXPIRED = "expired"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class FreezeScope(str, enum.Enum):
    """Which subscriptions a freeze targets."""

    GLOBAL = "global"
    BRANCH = "branch"
    PROGRAM = "program"


class FreezeStatus(str, enum.Enum):
    """Freeze lifecycle status."""

    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Subscription(Base, UUIDMixin, TimestampMixin):
    """A player's paid enrollment window in a program."""

    __tablename__ = "subscriptions"

    player_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    program_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus, create_constraint=False, native_enum=False),
        nullable=False,
        default=SubscriptionStatus.PENDING,
    )

    # Append-only trail of freeze adjustments
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    player = relationship("Player", lazy="selectin")
    program = relationship("Program", lazy="selectin")


class SubscriptionFreeze(Base, UUIDMixin, TimestampMixin):
    """Academy closure or pause that pushes subscription end dates forward."""

    __tablename__ = "subscription_freezes"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    title_ar: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    freeze_days: Mapped[int] = mapped_column(Integer, nullable=False)

    scope: Mapped[FreezeScope] = mapped_column(
        Enum(FreezeScope, create_constraint=False, native_enum=False),
        nullable=False,
        default=FreezeScope.GLOBAL,
    )
    branch_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("branches.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    program_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("programs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    player_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("players.id", ondelete="SET NULL"),
        nullable=True,
    )

    status: Mapped[FreezeStatus] = mapped_column(
        Enum(FreezeStatus, create_constraint=False, native_enum=False),
        nullable=False,
        default=FreezeStatus.SCHEDULED,
        index=True,
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    subscriptions_affected: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    branch = relationship("Branch", lazy="selectin")
    program = relationship("Program", lazy="selectin")


class FreezeAdjustment(Base, UUIDMixin, TimestampMixin):
    """Record of one subscription extended by a freeze.

    Cancellation reverts exactly these rows, so subscriptions that entered
    the scope after the freeze was applied are left untouched.
    """

    __tablename__ = "freeze_adjustments"

    freeze_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("subscription_freezes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    days: Mapped[int] = mapped_column(Integer, nullable=False)
    reverted_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
