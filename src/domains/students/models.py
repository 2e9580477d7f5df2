"""Student models."""
import enum
import uuid

from sqlalchemy import Enum, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.config.database import Base
from src.core.models import TimestampMixin, UUIDMixin


class StudentStatus(str, enum.Enum):
    """Whether the student currently occupies a slot."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Student(Base, UUIDMixin, TimestampMixin):
    """A student managed by one personal trainer."""

    __tablename__ = "students"

    trainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    goal: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[StudentStatus] = mapped_column(
        Enum(StudentStatus, name="student_status_enum", values_callable=lambda x: [e.value for e in x]),
        default=StudentStatus.INACTIVE,
        nullable=False,
        index=True,
    )

    @property
    def is_active(self) -> bool:
        return self.status == StudentStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Student {self.email} trainer={self.trainer_id} status={self.status}>"
