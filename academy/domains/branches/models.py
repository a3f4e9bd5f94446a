"""Branch model."""
from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from academy.config.database import Base
from academy.core.models import TimestampMixin, UUIDMixin


class Branch(Base, UUIDMixin, TimestampMixin):
    """Physical academy location. Facilities are named per branch."""

    __tablename__ = "branches"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_ar: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
