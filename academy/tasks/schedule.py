"""Training schedule tasks.

- Session reminders sent 24 hours and 1 hour before a session
- Expiry of unanswered waitlist offers, re-offering freed spots
"""
import logging

from academy.core.celery_app import celery_app
from academy.core.observability import capture_exception
from academy.tasks.base import run_async, task_session

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def send_session_reminders(self, hours_ahead: int = 24):
    """Remind parents about sessions ``hours_ahead`` from now.

    Sessions are flagged once reminded, so overlapping beat runs do not
    send duplicates.
    """
    logger.info("Starting %dh session reminders task", hours_ahead)
    return run_async(_send_session_reminders_async(hours_ahead))


async def _send_session_reminders_async(hours_ahead: int) -> dict:
    from academy.domains.schedule.service import ScheduleService

    async with task_session() as db:
        try:
            report = await ScheduleService(db).send_session_reminders(hours_ahead)
        except Exception as e:
            logger.error("Error in %dh session reminders: %s", hours_ahead, e)
            await db.rollback()
            capture_exception(e, extra={"hours_ahead": hours_ahead}, tags={"task": "session_reminders"})
            raise

    summary = report.summary()
    logger.info("Session reminders (%dh): %s", hours_ahead, summary)
    return summary


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def expire_waitlist_offers(self):
    """Expire waitlist offers past their deadline and promote the next entries."""
    logger.info("Starting waitlist offer expiry task")
    return run_async(_expire_waitlist_offers_async())


async def _expire_waitlist_offers_async() -> dict:
    from academy.domains.schedule.waitlist import WaitlistService

    async with task_session() as db:
        try:
            result = await WaitlistService(db).expire_stale_offers()
        except Exception as e:
            logger.error("Error expiring waitlist offers: %s", e)
            await db.rollback()
            capture_exception(e, tags={"task": "expire_waitlist_offers"})
            raise

    return {
        "expired": len(result.expired),
        "promoted": len(result.promotions.promoted),
        **result.promotions.notifications.summary(),
    }
