"""Student schemas for API validation."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from src.domains.tokens.models import AssignmentType

from .models import StudentStatus


class StudentCreate(BaseModel):
    """Schema for registering a student under the current trainer."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: str | None = Field(None, max_length=50)
    goal: str | None = Field(None, max_length=255)
    notes: str | None = None
    status: StudentStatus = StudentStatus.ACTIVE
    preferred_source: AssignmentType = AssignmentType.PLAN


class StudentStatusUpdate(BaseModel):
    status: StudentStatus
    preferred_source: AssignmentType = AssignmentType.PLAN


class StudentResponse(BaseModel):
    id: UUID
    trainer_id: UUID
    name: str
    email: str
    phone: str | None
    goal: str | None
    notes: str | None
    status: StudentStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
