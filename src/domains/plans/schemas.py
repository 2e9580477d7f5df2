"""Plan catalog and assignment schemas."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import PlanKind


class PlanCreate(BaseModel):
    """Schema for creating a catalog plan."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    student_limit: int = Field(..., ge=0)
    price: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    duration_days: int = Field(..., ge=1)
    kind: PlanKind = PlanKind.PAID
    active: bool = True


class PlanUpdate(BaseModel):
    """Partial plan update. Only ``active`` may change once a plan is in use."""

    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    student_limit: int | None = Field(None, ge=0)
    price: Decimal | None = Field(None, ge=0, decimal_places=2)
    duration_days: int | None = Field(None, ge=1)
    kind: PlanKind | None = None
    active: bool | None = None


class PlanResponse(BaseModel):
    id: UUID
    name: str
    description: str | None
    student_limit: int
    price: float
    duration_days: int
    kind: PlanKind
    active: bool

    model_config = ConfigDict(from_attributes=True)


class PlanAssignRequest(BaseModel):
    """Admin request to put a trainer on a plan."""

    plan_id: UUID
    custom_duration_days: int | None = Field(None, ge=1)
    reason: str | None = Field(None, max_length=500)


class AssignmentResponse(BaseModel):
    id: UUID
    trainer_id: UUID
    plan_id: UUID
    start_date: datetime
    expiry_date: datetime
    active: bool
    assigned_by_admin_id: UUID | None
    reason: str | None
    plan: PlanResponse | None = None

    model_config = ConfigDict(from_attributes=True)


class CleanupResponse(BaseModel):
    plans_deactivated: int
    tokens_deactivated: int
    students_archived: int = 0
