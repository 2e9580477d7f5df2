"""Student plan history.

One row per student taken out of a slot, so the trainer can later see who
was archived by a plan change or expiry and bring them back.
"""
import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.config.database import Base
from src.core.models import TimestampMixin, UUIDMixin
from src.domains.tokens.models import AssignmentType


class HistoryReason(str, enum.Enum):
    """Why a student lost their slot."""

    PLAN_EXPIRED = "plan_expired"
    MANUAL_DEACTIVATION = "manual_deactivation"
    PLAN_CHANGED = "plan_changed"
    TOKEN_EXPIRED = "token_expired"

    @property
    def allows_reactivation(self) -> bool:
        return self != HistoryReason.MANUAL_DEACTIVATION


class StudentPlanHistory(Base, UUIDMixin, TimestampMixin):
    """A student archived from a plan or token slot."""

    __tablename__ = "student_plan_history"
    __table_args__ = (
        Index("ix_student_plan_history_trainer_deactivated", "trainer_id", "date_deactivated"),
        Index("ix_student_plan_history_student_deactivated", "student_id", "date_deactivated"),
    )

    trainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    )
    previous_plan_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("plans.id", ondelete="SET NULL"),
        nullable=True,
    )
    # The plan assignment or token the student's slot was drawn from
    slot_source_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    slot_type: Mapped[AssignmentType | None] = mapped_column(
        Enum(AssignmentType, name="history_slot_type_enum", values_callable=lambda x: [e.value for e in x]),
        nullable=True,
    )
    date_activated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    date_deactivated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[HistoryReason] = mapped_column(
        Enum(HistoryReason, name="history_reason_enum", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    was_active: Mapped[bool] = mapped_column(Boolean, nullable=False)
    can_be_reactivated: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    reactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<StudentPlanHistory student={self.student_id} reason={self.reason}>"
