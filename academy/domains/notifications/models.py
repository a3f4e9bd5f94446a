"""Notification models for in-app notifications and SMS dispatch logs."""
import enum
import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from academy.config.database import Base
from academy.core.models import TimestampMixin, UUIDMixin


class NotificationType(str, enum.Enum):
    """Type of notification."""

    GENERAL = "general"

    # Session related
    SESSION_CREATED = "session_created"
    SESSION_UPDATED = "session_updated"
    SESSION_RESCHEDULED = "session_rescheduled"
    SESSION_CANCELLED = "session_cancelled"
    SESSION_REMINDER = "session_reminder"

    # Waitlist related
    WAITLIST_SPOT_AVAILABLE = "waitlist_spot_available"

    # Subscription related
    FREEZE_CREATED = "freeze_created"
    FREEZE_CANCELLED = "freeze_cancelled"


class SMSStatus(str, enum.Enum):
    """Outcome of one SMS dispatch."""

    SENT = "sent"
    FAILED = "failed"
    MOCKED = "mocked"  # No provider configured, message only logged


class Notification(Base, UUIDMixin, TimestampMixin):
    """Bilingual notification for a user."""

    __tablename__ = "notifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    notification_type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, create_constraint=False, native_enum=False),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    title_ar: Mapped[str | None] = mapped_column(String(255), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    message_ar: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Reference ids (session_id, program_id, freeze_id, ...)
    data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)


class SMSLog(Base, UUIDMixin, TimestampMixin):
    """One row per SMS recipient per dispatch."""

    __tablename__ = "sms_logs"

    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    recipient_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[SMSStatus] = mapped_column(
        Enum(SMSStatus, create_constraint=False, native_enum=False),
        nullable=False,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
