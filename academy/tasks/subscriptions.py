"""Subscription freeze tasks."""
import logging

from academy.core.celery_app import celery_app
from academy.core.observability import capture_exception
from academy.tasks.base import run_async, task_session

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def refresh_freeze_statuses(self):
    """Move freezes to active or completed as their dates pass. Runs daily."""
    logger.info("Starting freeze status refresh task")
    return run_async(_refresh_freeze_statuses_async())


async def _refresh_freeze_statuses_async() -> dict:
    from academy.domains.subscriptions.service import FreezeService

    async with task_session() as db:
        try:
            changed = await FreezeService(db).refresh_freeze_statuses()
        except Exception as e:
            logger.error("Error refreshing freeze statuses: %s", e)
            await db.rollback()
            capture_exception(e, tags={"task": "refresh_freeze_statuses"})
            raise

    return {"updated": len(changed)}
