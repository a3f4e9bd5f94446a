"""Authentication and role dependencies for routers."""
import uuid
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from academy.config.database import get_db
from academy.core.exceptions import ForbiddenError
from academy.core.security import decode_token
from academy.domains.users.models import User, UserRole

security = HTTPBearer(auto_error=False)

ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.OWNER)
MANAGER_ROLES = (UserRole.SUPER_ADMIN, UserRole.OWNER, UserRole.BRANCH_ADMIN)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Resolve the bearer token to an active user."""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized

    try:
        payload = decode_token(credentials.credentials)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise unauthorized

    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise unauthorized
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_roles(*roles: UserRole):
    """Dependency factory rejecting users outside the given roles."""

    async def checker(current_user: CurrentUser) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action.",
            )
        return current_user

    return checker


ScheduleManager = Annotated[User, Depends(require_roles(*MANAGER_ROLES))]


def ensure_branch_access(user: User, branch_id: uuid.UUID | None) -> None:
    """Branch admins may only act inside their own branch."""
    if user.role == UserRole.BRANCH_ADMIN and (branch_id is None or user.branch_id != branch_id):
        raise ForbiddenError("You do not have access to this branch")
