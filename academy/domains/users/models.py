"""User models for the academy platform."""
import enum
import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, String
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from academy.config.database import Base
from academy.core.models import TimestampMixin, UUIDMixin


class UserRole(str, enum.Enum):
    """Role of a user within the academy."""

    SUPER_ADMIN = "super_admin"
    OWNER = "owner"
    BRANCH_ADMIN = "branch_admin"
    COACH = "coach"
    ACCOUNTANT = "accountant"
    PARENT = "parent"


class User(Base, UUIDMixin, TimestampMixin):
    """Staff member or parent account."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    name_ar: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, create_constraint=False, native_enum=False),
        nullable=False,
        default=UserRole.PARENT,
    )

    # Branch admins and coaches belong to one branch
    branch_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("branches.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # {"language": "ar" | "en"}
    preferences: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
