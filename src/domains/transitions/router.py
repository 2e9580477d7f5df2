"""Plan transition routes for trainers (``/personal``)."""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.domains.auth.dependencies import CurrentTrainer

from .schemas import (
    EligibleStudent,
    ReactivationRequest,
    ReactivationResult,
    StudentHistoryResponse,
    TransitionPreview,
)
from .service import PlanTransitionService

router = APIRouter(prefix="/personal", tags=["plan-transitions"])


@router.get("/students/eligible-for-reactivation", response_model=list[EligibleStudent])
async def list_eligible_students(
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[EligibleStudent]:
    """Students archived in the last 30 days that can be brought back."""
    service = PlanTransitionService(db)
    return await service.get_eligible_students(current_user.id)


@router.post("/students/reactivate", response_model=ReactivationResult)
async def reactivate_students(
    request: ReactivationRequest,
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ReactivationResult:
    service = PlanTransitionService(db)
    return await service.reactivate_students(current_user.id, request.student_ids)


@router.get("/plan-transition/preview/{plan_id}", response_model=TransitionPreview)
async def preview_transition(
    plan_id: UUID,
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionPreview:
    """Classify moving to ``plan_id`` as first plan, renewal, upgrade or downgrade."""
    service = PlanTransitionService(db)
    return await service.preview(current_user.id, plan_id)


@router.get("/students/history", response_model=list[StudentHistoryResponse])
async def list_student_history(
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[StudentHistoryResponse]:
    service = PlanTransitionService(db)
    history = await service.list_history(current_user.id)
    return [StudentHistoryResponse.model_validate(h) for h in history]
