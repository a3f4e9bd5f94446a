"""SMS transport.

Sends through the configured HTTP provider (Taqnyat) or, when no provider
is configured, only logs the message. Every attempt is written to
``sms_logs``.
"""
import logging
import re
import uuid
from typing import TypedDict

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.config.settings import settings
from academy.domains.notifications.models import SMSLog, SMSStatus

logger = logging.getLogger(__name__)


class SMSRecipient(TypedDict, total=False):
    phone: str
    user_id: uuid.UUID | None


def format_phone(phone: str) -> str:
    """Normalize a Saudi number to international format without ``+``: 9665XXXXXXXX."""
    cleaned = re.sub(r"\D", "", str(phone))
    if cleaned.startswith("00"):
        cleaned = cleaned[2:]
    elif cleaned.startswith("0"):
        cleaned = cleaned[1:]
    if not cleaned.startswith("966"):
        cleaned = "966" + cleaned
    return cleaned


class SMSService:
    """Service for sending SMS messages."""

    def __init__(
        self,
        db: AsyncSession,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.db = db
        self._transport = transport

    @property
    def provider(self) -> str:
        return settings.SMS_PROVIDER if settings.sms_enabled else "mock"

    async def send_sms(
        self,
        recipient_type: str,
        recipients: list[SMSRecipient],
        message: str,
    ) -> bool:
        """Send one message to each recipient.

        Returns True only if every recipient was accepted (or mocked).

        Raises:
            ValueError: if recipients or message is empty.
        """
        if not recipients or not message:
            raise ValueError("send_sms requires recipients and message")

        all_sent = True
        for recipient in recipients:
            phone = format_phone(recipient["phone"])
            status = SMSStatus.SENT
            error = None

            if not settings.sms_enabled:
                logger.info("[SMS:mock] to=%s message=%r", phone, message)
                status = SMSStatus.MOCKED
            else:
                try:
                    await self._post(phone, message)
                    logger.info("[SMS:%s] SENT to=%s", self.provider, phone)
                except httpx.HTTPError as e:
                    logger.error("[SMS:%s] FAILED to=%s error=%s", self.provider, phone, e)
                    status = SMSStatus.FAILED
                    error = str(e)
                    all_sent = False

            self.db.add(
                SMSLog(
                    phone=phone,
                    user_id=recipient.get("user_id"),
                    message=message,
                    recipient_type=recipient_type,
                    status=status,
                    provider=self.provider,
                    error=error,
                )
            )

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("Failed to store SMS log: %s", e)

        return all_sent

    async def _post(self, phone: str, message: str) -> None:
        async with httpx.AsyncClient(
            timeout=settings.SMS_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            response = await client.post(
                settings.SMS_API_URL,
                json={
                    "recipients": [phone],
                    "body": message,
                    "sender": settings.SMS_SENDER,
                },
                headers={"Authorization": f"Bearer {settings.SMS_API_KEY}"},
            )
            response.raise_for_status()
