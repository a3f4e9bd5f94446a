"""Subscription freeze router."""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from academy.config.database import get_db
from academy.domains.auth.dependencies import ScheduleManager

from .models import FreezeScope, FreezeStatus
from .schemas import (
    FreezeChangeResponse,
    FreezeCreate,
    FreezeListResponse,
    FreezeRefreshResponse,
    FreezeResponse,
    FreezeUpdate,
)
from .service import FreezeResult, FreezeService

router = APIRouter(prefix="/subscription-freezes", tags=["subscription-freezes"])


def _change_to_response(message: str, result: FreezeResult) -> FreezeChangeResponse:
    return FreezeChangeResponse(
        message=message,
        freeze=FreezeResponse.model_validate(result.freeze),
        notifications_sent=result.notifications.notifications_sent,
        notifications_failed=result.notifications.notifications_failed,
    )


@router.get("", response_model=FreezeListResponse)
async def list_freezes(
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    status_filter: Annotated[FreezeStatus | None, Query(alias="status")] = None,
    scope: FreezeScope | None = None,
    branch_id: UUID | None = None,
) -> FreezeListResponse:
    """List freezes, newest first."""
    items, total = await FreezeService(db).list_freezes(
        current_user,
        status=status_filter,
        scope=scope,
        branch_id=branch_id,
        page=page,
        limit=limit,
    )
    return FreezeListResponse(
        items=[FreezeResponse.model_validate(f) for f in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/active", response_model=list[FreezeResponse])
async def get_active_freezes(
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[FreezeResponse]:
    freezes = await FreezeService(db).get_active_freezes()
    return [FreezeResponse.model_validate(f) for f in freezes]


@router.post("", response_model=FreezeChangeResponse, status_code=status.HTTP_201_CREATED)
async def create_freeze(
    request: FreezeCreate,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> FreezeChangeResponse:
    """Create a freeze and extend every matching subscription right away."""
    result = await FreezeService(db).create_freeze(request, current_user)
    message = (
        f"Freeze created. {result.freeze.subscriptions_affected} subscription(s) "
        f"extended by {result.freeze.freeze_days} days."
    )
    return _change_to_response(message, result)


@router.patch("/{freeze_id}", response_model=FreezeChangeResponse)
async def update_freeze(
    freeze_id: UUID,
    request: FreezeUpdate,
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> FreezeChangeResponse:
    """Cancel a freeze and revert the extensions it applied."""
    result = await FreezeService(db).update_freeze(freeze_id, request, current_user)
    message = (
        f"Freeze cancelled. {result.freeze.subscriptions_affected} subscription(s) reverted."
    )
    return _change_to_response(message, result)


@router.post("/refresh-statuses", response_model=FreezeRefreshResponse)
async def refresh_freeze_statuses(
    current_user: ScheduleManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> FreezeRefreshResponse:
    changed = await FreezeService(db).refresh_freeze_statuses()
    return FreezeRefreshResponse(updated=[FreezeResponse.model_validate(f) for f in changed])
