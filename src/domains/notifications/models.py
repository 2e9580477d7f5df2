"""Notification models for in-app user notifications."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.config.database import Base
from src.core.models import TimestampMixin, UUIDMixin


class NotificationType(str, enum.Enum):
    """Type of notification."""

    PLAN_EXPIRING = "plan_expiring"

    # Renewal workflow
    RENEWAL_LINK_SENT = "renewal_link_sent"
    RENEWAL_APPROVED = "renewal_approved"
    RENEWAL_REJECTED = "renewal_rejected"

    SYSTEM_ANNOUNCEMENT = "system_announcement"


class Notification(Base, UUIDMixin, TimestampMixin):
    """Notification for a user (trainer or admin)."""

    __tablename__ = "notifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    notification_type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, name="notification_type_enum", values_callable=lambda x: [e.value for e in x]),
        default=NotificationType.SYSTEM_ANNOUNCEMENT,
        nullable=False,
        index=True,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Status
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
