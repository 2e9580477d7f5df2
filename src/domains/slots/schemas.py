"""Slot availability schemas."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from src.domains.plans.schemas import AssignmentResponse, PlanResponse


class SlotDetails(BaseModel):
    """Breakdown of where a trainer's capacity comes from."""

    plan_active: bool
    plan_name: str | None
    plan_limit: int
    tokens_total: int
    tokens_consumed: int
    tokens_available: int
    total_limit: int
    active_students: int
    requested: int


class SlotVerdict(BaseModel):
    """Answer to "can this trainer activate N more students?"."""

    allowed: bool
    available_slots: int
    current_limit: int
    active_student_count: int
    message: str | None = None
    details: SlotDetails


class ActiveTokenSummary(BaseModel):
    id: UUID
    quantity: int
    consumed: int
    available: int
    expiry_date: datetime
    created_at: datetime
    reason: str | None = None


class PlanStatusResponse(BaseModel):
    """Current plan snapshot shown on the trainer dashboard."""

    plan: PlanResponse | None
    assignment: AssignmentResponse | None
    is_expired: bool
    current_limit: int
    active_students: int
    tokens_available: int
    usage_percentage: int
    available_slots: int
    can_activate_more: bool
    tokens: list[ActiveTokenSummary]


class ActiveTokensResponse(BaseModel):
    total_quantity: int


class TokenListResponse(BaseModel):
    tokens: list[ActiveTokenSummary]
