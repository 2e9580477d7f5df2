"""Token ledger models.

A token grants extra student slots on top of the trainer's plan. Each
consumed slot is recorded as one ``TokenAssignment`` per student.
"""
import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.config.database import Base
from src.core.models import TimestampMixin, UUIDMixin, as_utc, utcnow


class TokenKind(str, enum.Enum):
    """Where a token came from."""

    AVULSO = "avulso"  # Granted by an admin on top of the plan
    PLAN = "plan"  # Materialized from a plan assignment by the migration


class AssignmentType(str, enum.Enum):
    """Which entitlement a student's slot is drawn from."""

    PLAN = "plan"
    AVULSO = "avulso"


class Token(Base, UUIDMixin, TimestampMixin):
    """A bundle of ``quantity`` slots valid until ``expiry_date``."""

    __tablename__ = "tokens"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_tokens_quantity"),
    )

    trainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    expiry_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    granted_by_admin_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    kind: Mapped[TokenKind] = mapped_column(
        Enum(TokenKind, name="token_kind_enum", values_callable=lambda x: [e.value for e in x]),
        default=TokenKind.AVULSO,
        nullable=False,
    )
    plan_assignment_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("personal_plans.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    legacy_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)

    def is_valid(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.active and as_utc(self.expiry_date) > now

    def __repr__(self) -> str:
        return f"<Token trainer={self.trainer_id} qty={self.quantity} kind={self.kind}>"


class TokenAssignment(Base, UUIDMixin):
    """One consumed slot: binds a student to a plan or a token.

    ``token_id`` points at ``Token.id`` for avulso slots and at
    ``PersonalPlanAssignment.id`` for plan slots.
    """

    __tablename__ = "token_assignments"

    token_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("students.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    trainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[AssignmentType] = mapped_column(
        Enum(AssignmentType, name="assignment_type_enum", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<TokenAssignment student={self.student_id} type={self.type}>"


class LegacyToken(Base):
    """Token rows in the shape used before the ledger existed.

    Read only by the migration. Ids are opaque strings.
    """

    __tablename__ = "tokens_avulsos"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    personal_trainer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    expiry_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    assigned_student_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    date_assigned: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    granted_by_admin_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
