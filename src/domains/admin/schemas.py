"""Admin console schemas."""
from pydantic import BaseModel, EmailStr, Field

from src.domains.auth.schemas import UserResponse
from src.domains.plans.schemas import AssignmentResponse
from src.domains.slots.schemas import PlanStatusResponse
from src.domains.tokens.schemas import TokenResponse


class TrainerCreate(BaseModel):
    """Admin registration of a personal trainer."""

    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    phone: str | None = Field(None, max_length=50)


class TrainerCreatedResponse(BaseModel):
    trainer: UserResponse
    assignment: AssignmentResponse | None


class TrainerStatusResponse(BaseModel):
    """Full entitlement picture of one trainer."""

    trainer: UserResponse
    current: PlanStatusResponse
    active_tokens: list[TokenResponse]
    expired_tokens: list[TokenResponse]
    total_active_tokens: int
    active_students: int
    total_limit: int
    plan_history: list[AssignmentResponse]
