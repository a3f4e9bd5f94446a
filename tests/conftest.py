"""Test configuration and fixtures for the Academy API."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from academy.config.database import Base, get_db
from academy.domains.branches.models import Branch
from academy.domains.programs.models import Player, Program
from academy.domains.users.models import User, UserRole
from academy.main import create_app

from tests.helpers import make_user

# Test database URL - use SQLite in-memory for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for tests."""
    return "asyncio"


@pytest.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import all models to register them
    from academy.domains import models  # noqa: F401

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture(scope="function")
async def client(test_engine, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""
    app = create_app()

    # Override the database dependency
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
async def branch(db_session: AsyncSession) -> Branch:
    branch = Branch(name="North Branch", name_ar="الفرع الشمالي")
    db_session.add(branch)
    await db_session.commit()
    await db_session.refresh(branch)
    return branch


@pytest.fixture
async def other_branch(db_session: AsyncSession) -> Branch:
    branch = Branch(name="South Branch", name_ar="الفرع الجنوبي")
    db_session.add(branch)
    await db_session.commit()
    await db_session.refresh(branch)
    return branch


@pytest.fixture
async def coach(db_session: AsyncSession, branch: Branch) -> User:
    return await make_user(
        db_session, UserRole.COACH, branch_id=branch.id, first_name="Omar", last_name="Saleh"
    )


@pytest.fixture
async def other_coach(db_session: AsyncSession, branch: Branch) -> User:
    return await make_user(
        db_session, UserRole.COACH, branch_id=branch.id, first_name="Ali", last_name="Hassan"
    )


@pytest.fixture
async def owner(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.OWNER)


@pytest.fixture
async def branch_admin(db_session: AsyncSession, branch: Branch) -> User:
    return await make_user(db_session, UserRole.BRANCH_ADMIN, branch_id=branch.id)


@pytest.fixture
async def parent(db_session: AsyncSession) -> User:
    return await make_user(
        db_session, UserRole.PARENT, phone="0501234567", language="en", first_name="Sara"
    )


@pytest.fixture
async def program(db_session: AsyncSession, branch: Branch, coach: User) -> Program:
    """Football program meeting Monday and Wednesday 17:00-18:30 on Field A."""
    program = Program(
        branch_id=branch.id,
        name="Football U10",
        name_ar="كرة القدم تحت 10",
        capacity=2,
        current_enrollment=1,
        schedule=[
            {
                "day": "monday",
                "sessions": [
                    {
                        "coach_id": str(coach.id),
                        "start_time": "17:00",
                        "end_time": "18:30",
                        "facility": "Field A",
                    }
                ],
            },
            {
                "day": "wednesday",
                "sessions": [
                    {
                        "coach_id": str(coach.id),
                        "start_time": "17:00",
                        "end_time": "18:30",
                        "facility": "Field A",
                        "max_capacity": 15,
                    }
                ],
            },
        ],
    )
    db_session.add(program)
    await db_session.commit()
    await db_session.refresh(program)
    return program


@pytest.fixture
async def player(
    db_session: AsyncSession, branch: Branch, program: Program, parent: User
) -> Player:
    player = Player(
        first_name="Yousef",
        last_name="Ahmed",
        first_name_ar="يوسف",
        last_name_ar="أحمد",
        parent_id=parent.id,
        branch_id=branch.id,
        program_id=program.id,
    )
    db_session.add(player)
    await db_session.commit()
    await db_session.refresh(player)
    return player
