"""Plan transition schemas."""
import enum
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.domains.plans.schemas import AssignmentResponse, PlanResponse
from src.domains.tokens.models import AssignmentType

from .models import HistoryReason


class TransitionType(str, enum.Enum):
    FIRST_TIME = "first_time"
    RENEWAL = "renewal"
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"


class TransitionPreview(BaseModel):
    """What assigning ``new_plan`` would mean for the trainer."""

    type: TransitionType
    current_plan: PlanResponse | None
    new_plan: PlanResponse
    limit_difference: int


class EligibleStudent(BaseModel):
    student_id: UUID
    student_name: str
    student_email: str
    date_deactivated: datetime
    previous_plan_name: str | None
    reason: HistoryReason


class PlanTransitionResult(BaseModel):
    transition_type: TransitionType
    assignment: AssignmentResponse
    archived_students: int
    reactivated_students: int
    students_requiring_manual_selection: int
    eligible_students: list[EligibleStudent]
    available_slots: int
    message: str


class ReactivationRequest(BaseModel):
    student_ids: list[UUID] = Field(..., min_length=1)


class ReactivationResult(BaseModel):
    reactivated_count: int
    errors: list[str]


class StudentHistoryResponse(BaseModel):
    id: UUID
    student_id: UUID
    previous_plan_id: UUID | None
    slot_type: AssignmentType | None
    date_activated: datetime
    date_deactivated: datetime
    reason: HistoryReason
    was_active: bool
    can_be_reactivated: bool
    reactivated_at: datetime | None

    model_config = ConfigDict(from_attributes=True)
