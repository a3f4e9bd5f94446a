"""Notification sink and recipient dispatch."""
import logging
import uuid
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.domains.notifications.fanout import FanoutReport, Recipient
from academy.domains.notifications.messages import BilingualMessage
from academy.domains.notifications.models import Notification, NotificationType
from academy.domains.notifications.sms import SMSService

logger = logging.getLogger(__name__)


class NotificationService:
    """Persists in-app notifications and relays SMS for fan-out callers."""

    def __init__(self, db: AsyncSession, sms: SMSService | None = None):
        self.db = db
        self.sms = sms or SMSService(db)

    async def create(
        self,
        user_id: uuid.UUID,
        notification_type: NotificationType,
        title: str,
        message: str,
        title_ar: str | None = None,
        message_ar: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> Notification | None:
        """Create one notification. Logs and returns None on failure."""
        notification = Notification(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            title_ar=title_ar,
            message=message,
            message_ar=message_ar,
            data=data,
        )
        self.db.add(notification)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("Failed to create notification for user %s: %s", user_id, e)
            return None
        return notification

    async def notify(
        self,
        report: FanoutReport,
        recipient: Recipient,
        notification_type: NotificationType,
        content: BilingualMessage,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Store an in-app notification for a recipient and record the outcome."""
        notification = await self.create(
            user_id=recipient.user_id,
            notification_type=notification_type,
            title=content.title,
            title_ar=content.title_ar,
            message=content.message,
            message_ar=content.message_ar,
            data=data,
        )
        report.record(
            "in_app",
            recipient.user_id,
            success=notification is not None,
            error=None if notification is not None else "notification not stored",
        )

    async def text(
        self,
        report: FanoutReport,
        recipient: Recipient,
        content: BilingualMessage,
    ) -> None:
        """SMS a recipient in their language. No-op without a phone."""
        if not recipient.phone:
            return
        body = content.for_language(recipient.language)
        try:
            sent = await self.sms.send_sms(
                recipient_type="individual",
                recipients=[{"phone": recipient.phone, "user_id": recipient.user_id}],
                message=body,
            )
        except Exception as e:
            logger.error("Failed to send SMS to %s: %s", recipient.phone, e)
            report.record("sms", recipient.user_id, False, recipient.phone, str(e))
            return
        report.record(
            "sms",
            recipient.user_id,
            sent,
            recipient.phone,
            None if sent else "provider rejected message",
        )
