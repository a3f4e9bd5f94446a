"""Tests for SMSService and phone normalization."""

import json
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy import select

from academy.config.settings import settings
from academy.domains.notifications.models import SMSLog, SMSStatus
from academy.domains.notifications.sms import SMSService, format_phone


@pytest.fixture
def provider_enabled():
    """Configure a real provider for the duration of a test."""
    with (
        patch.object(settings, "SMS_PROVIDER", "taqnyat"),
        patch.object(settings, "SMS_API_KEY", "test-key"),
        patch.object(settings, "SMS_SENDER", "Academy"),
    ):
        yield


class TestFormatPhone:
    @pytest.mark.parametrize(
        "raw",
        ["0501234567", "+966 50 123 4567", "00966501234567", "501234567", "966-50-123-4567"],
    )
    def test_normalizes_to_international_without_plus(self, raw):
        assert format_phone(raw) == "966501234567"


class TestSendSMS:
    """Tests for SMSService.send_sms."""

    async def test_mock_provider_logs_without_calling_out(self, db_session, parent):
        def fail(request: httpx.Request) -> httpx.Response:
            raise AssertionError("mock provider must not make HTTP calls")

        service = SMSService(db_session, transport=httpx.MockTransport(fail))

        sent = await service.send_sms(
            "individual", [{"phone": "0501234567", "user_id": parent.id}], "Hello"
        )

        assert sent is True
        log = (await db_session.execute(select(SMSLog))).scalars().one()
        assert log.status == SMSStatus.MOCKED
        assert log.provider == "mock"
        assert log.user_id == parent.id

    async def test_posts_to_provider(self, db_session, provider_enabled):
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(201, json={"statusCode": 201})

        service = SMSService(db_session, transport=httpx.MockTransport(handler))

        sent = await service.send_sms("individual", [{"phone": "0501234567"}], "Hello")

        assert sent is True
        request = captured[0]
        assert request.headers["Authorization"] == "Bearer test-key"
        assert json.loads(request.content) == {
            "recipients": ["966501234567"],
            "body": "Hello",
            "sender": "Academy",
        }
        log = (await db_session.execute(select(SMSLog))).scalars().one()
        assert log.status == SMSStatus.SENT
        assert log.provider == "taqnyat"

    async def test_provider_error_is_logged_and_reported(self, db_session, provider_enabled):
        service = SMSService(
            db_session,
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
        )

        sent = await service.send_sms(
            "individual", [{"phone": "0501234567"}, {"phone": "0559876543"}], "Hello"
        )

        assert sent is False
        logs = (await db_session.execute(select(SMSLog))).scalars().all()
        assert len(logs) == 2
        assert all(log.status == SMSStatus.FAILED for log in logs)
        assert all(log.error for log in logs)

    async def test_connection_error_is_a_failure(self, db_session, provider_enabled):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        service = SMSService(db_session, transport=httpx.MockTransport(handler))

        assert await service.send_sms("individual", [{"phone": "0501234567"}], "Hi") is False

    async def test_empty_input_is_rejected(self, db_session):
        service = SMSService(db_session)

        with pytest.raises(ValueError):
            await service.send_sms("individual", [], "Hello")
        with pytest.raises(ValueError):
            await service.send_sms("individual", [{"phone": "0501234567"}], "")
