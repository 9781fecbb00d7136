"""In-app notifications and admin alerts

Delivery is best effort: a failed notification is logged and dropped, it never
undoes the booking or payment change that triggered it.
"""

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.config import settings
from nannygold.db.models import Notification, UserProfile, UserRole
from nannygold.services.email_notifications import EmailNotificationService

logger = logging.getLogger(__name__)


class NotificationService:
    """Writes notification rows and forwards admin email"""

    def __init__(self, db: AsyncSession, email_service: EmailNotificationService | None = None):
        self.db = db
        self.email_service = email_service or EmailNotificationService()

    async def send(
        self,
        user_id: uuid.UUID,
        title: str,
        message: str,
        type: str,
        data: dict[str, Any] | None = None,
    ) -> bool:
        try:
            self.db.add(Notification(
                user_id=user_id,
                title=title,
                message=message,
                type=type,
                data=data or {},
            ))
            await self.db.commit()
            return True
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Failed to send notification to {user_id}: {e}",
                extra={"notification_type": type, "booking_id": (data or {}).get("booking_id")},
            )
            return False

    async def admin_ids(self) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(UserProfile.id).where(UserProfile.role == UserRole.ADMIN).order_by(UserProfile.id)
        )
        return list(result.scalars().all())

    async def notify_admins(
        self,
        title: str,
        message: str,
        type: str,
        data: dict[str, Any] | None = None,
    ) -> int:
        """Send one notification per admin; returns how many were stored"""
        try:
            admins = await self.admin_ids()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load admins for {type} notification: {e}")
            return 0

        sent = 0
        for admin_id in admins:
            if await self.send(admin_id, title, message, type, data):
                sent += 1
        if not admins:
            logger.warning(f"No admin profiles found for {type} notification")
        return sent

    def send_email(self, to_email: str, subject: str, html_content: str, text_content: str | None = None) -> bool:
        try:
            return self.email_service.send_email(to_email, subject, html_content, text_content)
        except Exception as e:
            logger.error(f"Failed to send email '{subject}' to {to_email}: {e}", exc_info=True)
            return False

    def send_admin_email(self, subject: str, html_content: str, text_content: str | None = None) -> bool:
        return self.send_email(settings.admin_email, subject, html_content, text_content)
