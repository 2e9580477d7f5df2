"""Token ledger schemas."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import AssignmentType, TokenKind


class TokenGrantRequest(BaseModel):
    """Admin grant of extra slots to a trainer."""

    quantity: int = Field(..., ge=1)
    days: int | None = Field(None, ge=1)
    reason: str | None = Field(None, max_length=500)


class TokenResponse(BaseModel):
    id: UUID
    trainer_id: UUID
    quantity: int
    expiry_date: datetime
    active: bool
    kind: TokenKind
    reason: str | None
    granted_by_admin_id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenAssignmentResponse(BaseModel):
    """A student's consumed slot.

    ``legacy`` carries the field names older clients read.
    """

    id: UUID
    token_id: UUID
    student_id: UUID
    trainer_id: UUID
    type: AssignmentType
    valid_until: datetime
    assigned_at: datetime
    legacy: dict[str, Any] | None = None

    model_config = ConfigDict(from_attributes=True)


class StudentConsumption(BaseModel):
    student_id: UUID
    student_name: str
    type: AssignmentType
    token_id: UUID
    valid_until: datetime


class TokenStatusResponse(BaseModel):
    """Trainer-wide token and slot summary."""

    plan_limit: int
    plan_consumed: int
    tokens_total: int
    tokens_consumed: int
    tokens_available: int
    total_limit: int
    active_students: int
    available_slots: int
    consumption: list[StudentConsumption]


class MigrationResult(BaseModel):
    tokens_migrated: int
    plan_tokens_generated: int
    total_errors: list[str]
