"""Plan catalog and trainer plan assignment models."""
import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.config.database import Base
from src.core.models import TimestampMixin, UUIDMixin, as_utc, utcnow


class PlanKind(str, enum.Enum):
    """Catalog plan type."""

    FREE = "free"
    PAID = "paid"


class Plan(Base, UUIDMixin, TimestampMixin):
    """A subscription plan offered to personal trainers.

    ``student_limit`` is how many students a trainer on this plan may keep
    active at the same time.
    """

    __tablename__ = "plans"
    __table_args__ = (
        CheckConstraint("student_limit >= 0", name="ck_plans_student_limit"),
        CheckConstraint("price >= 0", name="ck_plans_price"),
        CheckConstraint("duration_days >= 1", name="ck_plans_duration_days"),
    )

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    student_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[PlanKind] = mapped_column(
        Enum(PlanKind, name="plan_kind_enum", values_callable=lambda x: [e.value for e in x]),
        default=PlanKind.PAID,
        nullable=False,
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Plan {self.name} limit={self.student_limit}>"


class PersonalPlanAssignment(Base, UUIDMixin, TimestampMixin):
    """A plan granted to a trainer for a bounded period.

    Only rows with ``active`` set and ``expiry_date`` in the future count.
    The flag alone never grants slots.
    """

    __tablename__ = "personal_plans"
    __table_args__ = (
        CheckConstraint("expiry_date > start_date", name="ck_personal_plans_dates"),
    )

    trainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expiry_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    assigned_by_admin_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    plan: Mapped["Plan"] = relationship("Plan", lazy="joined")

    def is_current(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.active and as_utc(self.expiry_date) > now

    def __repr__(self) -> str:
        return f"<PersonalPlanAssignment trainer={self.trainer_id} plan={self.plan_id}>"
