"""Notifications router for user notifications."""
from datetime import datetime, timezone
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.core.exceptions import NotFoundError
from src.domains.auth.dependencies import CurrentUser

from .models import Notification
from .schemas import NotificationListResponse, NotificationResponse, UnreadCountResponse

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    unread_only: Annotated[bool, Query()] = False,
) -> NotificationListResponse:
    """List notifications for current user."""
    base_filter = [Notification.user_id == current_user.id]
    if unread_only:
        base_filter.append(Notification.read == False)  # noqa: E712

    result = await db.execute(select(func.count(Notification.id)).where(and_(*base_filter)))
    total = result.scalar() or 0

    unread_query = select(func.count(Notification.id)).where(
        Notification.user_id == current_user.id,
        Notification.read == False,  # noqa: E712
    )
    result = await db.execute(unread_query)
    unread_count = result.scalar() or 0

    query = (
        select(Notification)
        .where(and_(*base_filter))
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(query)
    notifications = list(result.scalars().all())

    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        total=total,
        unread_count=unread_count,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UnreadCountResponse:
    """Get count of unread notifications."""
    query = select(func.count(Notification.id)).where(
        Notification.user_id == current_user.id,
        Notification.read == False,  # noqa: E712
    )
    result = await db.execute(query)
    return UnreadCountResponse(unread_count=result.scalar() or 0)


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> NotificationResponse:
    """Mark a notification as read."""
    notification = await db.get(Notification, notification_id)

    if not notification or notification.user_id != current_user.id:
        raise NotFoundError("Notificação não encontrada.")

    if not notification.read:
        notification.read = True
        notification.read_at = datetime.now(timezone.utc)
        await db.commit()

    return NotificationResponse.model_validate(notification)


@router.post("/read-all", response_model=UnreadCountResponse)
async def mark_all_read(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UnreadCountResponse:
    """Mark all notifications as read."""
    stmt = (
        update(Notification)
        .where(
            Notification.user_id == current_user.id,
            Notification.read == False,  # noqa: E712
        )
        .values(read=True, read_at=datetime.now(timezone.utc))
    )
    await db.execute(stmt)
    await db.commit()
    return UnreadCountResponse(unread_count=0)
