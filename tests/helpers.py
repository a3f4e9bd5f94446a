"""Shared test helpers."""

import uuid
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.security import create_access_token
from academy.domains.users.models import User, UserRole

# A Monday, far enough ahead that "today" never interferes
MONDAY = date(2030, 1, 7)


def auth_headers(user: User) -> dict[str, str]:
    """Bearer header for a user."""
    token = create_access_token(user.id, user.role.value)
    return {"Authorization": f"Bearer {token}"}


async def make_user(
    db: AsyncSession,
    role: UserRole,
    branch_id: uuid.UUID | None = None,
    phone: str | None = None,
    language: str | None = None,
    first_name: str = "Test",
    last_name: str = "User",
) -> User:
    user_id = uuid.uuid4()
    user = User(
        id=user_id,
        email=f"{role.value}-{user_id}@example.com",
        first_name=first_name,
        last_name=last_name,
        role=role,
        branch_id=branch_id,
        phone=phone,
        preferences={"language": language} if language else None,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user
