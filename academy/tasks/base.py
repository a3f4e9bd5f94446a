"""Shared plumbing for Celery tasks."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from academy.config.database import build_engine, build_session_factory


def run_async(coro):
    """Run a coroutine to completion on a loop owned by this task run."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@asynccontextmanager
async def task_session() -> AsyncIterator[AsyncSession]:
    """Session on a fresh engine bound to the current event loop.

    Each task run owns its loop, so pooled connections cannot be shared
    with the application engine.
    """
    engine = build_engine()
    try:
        async with build_session_factory(engine)() as db:
            yield db
    finally:
        await engine.dispose()
