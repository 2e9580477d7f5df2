"""Plan renewal request models."""
import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.config.database import Base
from src.core.exceptions import ValidationError
from src.core.models import TimestampMixin, UUIDMixin, utcnow


class RenewalStatus(str, enum.Enum):
    """Canonical renewal request states."""

    PENDING = "pending"
    PAYMENT_LINK_SENT = "payment_link_sent"
    PAYMENT_PROOF_UPLOADED = "payment_proof_uploaded"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (RenewalStatus.APPROVED, RenewalStatus.REJECTED)


# Values written by older clients, mapped to the canonical state
LEGACY_STATUS_ALIASES: dict[str, RenewalStatus] = {
    "PENDING": RenewalStatus.PENDING,
    "requested": RenewalStatus.PENDING,
    "link_sent": RenewalStatus.PAYMENT_LINK_SENT,
    "proof_submitted": RenewalStatus.PAYMENT_PROOF_UPLOADED,
    "APPROVED": RenewalStatus.APPROVED,
    "FULFILLED": RenewalStatus.APPROVED,
    "fulfilled": RenewalStatus.APPROVED,
    "cycle_assignment_pending": RenewalStatus.APPROVED,
    "REJECTED": RenewalStatus.REJECTED,
}


def normalize_status(value: "str | RenewalStatus") -> RenewalStatus:
    """Map a stored or submitted status, legacy or canonical, to RenewalStatus."""
    if isinstance(value, RenewalStatus):
        return value
    try:
        return RenewalStatus(value)
    except ValueError:
        pass
    if value in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[value]
    raise ValidationError(f"Status de renovação desconhecido: {value}")


class ProofKind(str, enum.Enum):
    LINK = "link"
    FILE = "file"


class RenewalRequest(Base, UUIDMixin, TimestampMixin):
    """A trainer's request to renew or change plan, reviewed by an admin.

    ``status`` may hold legacy values on rows written by older clients;
    read it through ``state``.
    """

    __tablename__ = "renewal_requests"

    personal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("plans.id", ondelete="SET NULL"),
        nullable=True,
    )
    student_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("students.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(40),
        default=RenewalStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # {"kind": "link", "url": ...} or
    # {"kind": "file", "file_id", "filename", "content_type", "size", "uploaded_at"}
    proof: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    payment_link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    payment_proof_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    payment_decision_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    link_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    proof_uploaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def state(self) -> RenewalStatus:
        return normalize_status(self.status)

    def __repr__(self) -> str:
        return f"<RenewalRequest personal={self.personal_id} status={self.status}>"
