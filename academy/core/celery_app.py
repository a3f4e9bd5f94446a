"""Celery worker and beat for the academy's periodic sweeps.

    celery -A academy.core.celery_app worker -l info
    celery -A academy.core.celery_app beat -l info

Every sweep is idempotent, so at-least-once delivery and overlapping beat
runs are safe.
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init
from dotenv import load_dotenv

# Worker processes read the same .env as the API before settings load
load_dotenv()

from academy.config.settings import settings  # noqa: E402

celery_app = Celery(
    "academy",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "academy.tasks.schedule",
        "academy.tasks.subscriptions",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Reminder windows and freeze dates are computed in UTC
    timezone="UTC",
    enable_utc=True,
    task_default_queue="academy",
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,
    task_soft_time_limit=240,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,
    result_expires=3600,
)


def _sweep(task: str, schedule: crontab, **kwargs) -> dict:
    entry = {"task": f"academy.tasks.{task}", "schedule": schedule}
    if kwargs:
        entry["kwargs"] = kwargs
    return entry


celery_app.conf.beat_schedule = {
    "session-reminders-24h": _sweep(
        "schedule.send_session_reminders", crontab(minute=0), hours_ahead=24
    ),
    "session-reminders-1h": _sweep(
        "schedule.send_session_reminders", crontab(minute="*/10"), hours_ahead=1
    ),
    "expire-waitlist-offers": _sweep(
        "schedule.expire_waitlist_offers", crontab(minute="*/30")
    ),
    "refresh-freeze-statuses": _sweep(
        "subscriptions.refresh_freeze_statuses", crontab(minute=5, hour=0)
    ),
}


@worker_process_init.connect
def _init_worker_observability(**kwargs) -> None:
    from academy.core.observability import init_observability

    init_observability(component="worker")
