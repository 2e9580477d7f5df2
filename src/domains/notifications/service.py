"""Notification sink used by the entitlement workflows."""
import uuid

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Notification, NotificationType

logger = structlog.get_logger(__name__)


async def send_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    message: str,
    notification_type: NotificationType = NotificationType.SYSTEM_ANNOUNCEMENT,
) -> Notification | None:
    """Store a notification for ``user_id``.

    Fire-and-forget: delivery failures are logged and never reach the caller.
    Returns the stored notification, or None when it could not be saved.
    """
    notification = Notification(
        user_id=user_id,
        notification_type=notification_type,
        message=message,
    )
    try:
        db.add(notification)
        await db.commit()
    except SQLAlchemyError as e:
        logger.error(
            "notification_send_failed",
            user_id=str(user_id),
            notification_type=notification_type.value,
            error=str(e),
        )
        await db.rollback()
        return None

    logger.info("notification_sent", user_id=str(user_id), notification_type=notification_type.value)
    return notification
