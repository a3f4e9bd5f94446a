"""Subscription freeze schemas for API validation."""
import datetime as dt
import enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import FreezeScope, FreezeStatus


class FreezeScopeInput(str, enum.Enum):
    """Scopes accepted on creation.

    ``program_player`` is stored as ``program`` with a ``player_id``.
    """

    GLOBAL = "global"
    BRANCH = "branch"
    PROGRAM = "program"
    PROGRAM_PLAYER = "program_player"


class FreezeCreate(BaseModel):
    """Schema for creating a subscription freeze."""

    title: str | None = Field(default=None, max_length=255)
    title_ar: str | None = Field(default=None, max_length=255)
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    scope: FreezeScopeInput = FreezeScopeInput.GLOBAL
    branch_id: UUID | None = None
    program_id: UUID | None = None
    player_id: UUID | None = None


class FreezeUpdate(BaseModel):
    """Only cancellation is supported."""

    status: FreezeStatus


class FreezeResponse(BaseModel):
    """Schema for subscription freeze response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    title_ar: str | None
    start_date: dt.date
    end_date: dt.date
    freeze_days: int
    scope: FreezeScope
    branch_id: UUID | None
    program_id: UUID | None
    player_id: UUID | None
    status: FreezeStatus
    created_by: UUID | None
    applied: bool
    subscriptions_affected: int
    created_at: dt.datetime


class FreezeChangeResponse(BaseModel):
    message: str
    freeze: FreezeResponse
    notifications_sent: int = 0
    notifications_failed: int = 0


class FreezeListResponse(BaseModel):
    items: list[FreezeResponse]
    total: int
    page: int
    limit: int


class FreezeRefreshResponse(BaseModel):
    updated: list[FreezeResponse]
