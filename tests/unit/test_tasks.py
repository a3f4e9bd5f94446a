"""Tests for the Celery task bodies, run against the test database."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest

from academy.tasks import schedule as schedule_tasks
from academy.tasks import subscriptions as subscription_tasks


@pytest.fixture
def shared_session(db_session):
    """Hand the test session to task bodies instead of a fresh engine."""

    @asynccontextmanager
    async def fake_task_session():
        yield db_session

    with (
        patch.object(schedule_tasks, "task_session", fake_task_session),
        patch.object(subscription_tasks, "task_session", fake_task_session),
    ):
        yield db_session


class TestScheduleTasks:
    async def test_reminders_return_summary(self, shared_session):
        result = await schedule_tasks._send_session_reminders_async(24)

        assert result == {
            "notifications_sent": 0,
            "notifications_failed": 0,
            "sms_sent": 0,
            "sms_failed": 0,
        }

    async def test_reminder_failure_is_reported_and_raised(self, shared_session):
        with (
            patch(
                "academy.domains.schedule.service.ScheduleService.send_session_reminders",
                AsyncMock(side_effect=RuntimeError("db down")),
            ),
            patch.object(schedule_tasks, "capture_exception") as capture,
        ):
            with pytest.raises(RuntimeError):
                await schedule_tasks._send_session_reminders_async(1)

        capture.assert_called_once()
        assert capture.call_args.kwargs["extra"] == {"hours_ahead": 1}

    async def test_expiry_with_nothing_to_do(self, shared_session):
        result = await schedule_tasks._expire_waitlist_offers_async()

        assert result["expired"] == 0
        assert result["promoted"] == 0


class TestSubscriptionTasks:
    async def test_refresh_counts_changes(self, shared_session):
        result = await subscription_tasks._refresh_freeze_statuses_async()

        assert result == {"updated": 0}
