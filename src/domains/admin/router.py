"""Admin routes: plan catalog, trainers and entitlement grants."""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.domains.auth.dependencies import CurrentAdmin, require_capability
from src.domains.auth.permissions import Capability
from src.domains.auth.schemas import UserResponse
from src.domains.plans.schemas import (
    CleanupResponse,
    PlanAssignRequest,
    PlanCreate,
    PlanResponse,
    PlanUpdate,
)
from src.domains.plans.service import PlanService
from src.domains.tokens.schemas import TokenGrantRequest, TokenResponse
from src.domains.tokens.service import TokenService
from src.domains.transitions.schemas import PlanTransitionResult
from src.domains.transitions.service import PlanTransitionService
from src.domains.users.models import User

from .schemas import TrainerCreate, TrainerCreatedResponse, TrainerStatusResponse
from .service import AdminService

router = APIRouter(prefix="/admin", tags=["admin"])

PlanManager = Annotated[User, Depends(require_capability(Capability.MANAGE_PLANS))]
TokenGranter = Annotated[User, Depends(require_capability(Capability.GRANT_TOKENS))]


# ==================== Plans ====================

@router.get("/planos", response_model=list[PlanResponse])
async def list_plans(
    current_user: PlanManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[PlanResponse]:
    """All catalog plans, including inactive ones."""
    service = PlanService(db)
    return [PlanResponse.model_validate(p) for p in await service.list_plans(active_only=False)]


@router.post("/planos", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    request: PlanCreate,
    current_user: PlanManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PlanResponse:
    service = PlanService(db)
    return PlanResponse.model_validate(await service.create_plan(request))


@router.patch("/planos/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: UUID,
    request: PlanUpdate,
    current_user: PlanManager,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PlanResponse:
    """Update a plan. Plans in use only accept toggling ``active``."""
    service = PlanService(db)
    return PlanResponse.model_validate(await service.update_plan(plan_id, request))


# ==================== Trainers ====================

@router.get("/personais", response_model=list[UserResponse])
async def list_trainers(
    current_user: CurrentAdmin,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[UserResponse]:
    service = AdminService(db)
    return [UserResponse.model_validate(u) for u in await service.list_trainers()]


@router.post("/personais", response_model=TrainerCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_trainer(
    request: TrainerCreate,
    current_user: CurrentAdmin,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TrainerCreatedResponse:
    """Register a trainer on the free plan."""
    service = AdminService(db)
    return await service.create_trainer(request)


@router.get("/personais/{trainer_id}/status", response_model=TrainerStatusResponse)
async def get_trainer_status(
    trainer_id: UUID,
    current_user: CurrentAdmin,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TrainerStatusResponse:
    """Current plan, tokens and the last plan assignments of a trainer."""
    service = AdminService(db)
    return await service.get_trainer_status(trainer_id)


@router.post("/personais/{trainer_id}/assign-plan", response_model=PlanTransitionResult)
async def assign_plan(
    trainer_id: UUID,
    request: PlanAssignRequest,
    current_user: CurrentAdmin,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PlanTransitionResult:
    """Put a trainer on a plan, replacing the current one.

    Students on plan slots are archived and, unless this is a downgrade,
    reactivated on the new plan.
    """
    await AdminService(db).get_trainer(trainer_id)
    service = PlanTransitionService(db)
    return await service.change_plan(
        trainer_id,
        request.plan_id,
        admin_id=current_user.id,
        reason=request.reason,
        custom_duration_days=request.custom_duration_days,
    )


@router.post(
    "/personais/{trainer_id}/add-tokens",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_tokens(
    trainer_id: UUID,
    request: TokenGrantRequest,
    current_user: TokenGranter,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TokenResponse:
    """Grant extra student slots to a trainer."""
    await AdminService(db).get_trainer(trainer_id)
    service = TokenService(db)
    token = await service.add_tokens(
        trainer_id,
        request.quantity,
        admin_id=current_user.id,
        days=request.days,
        reason=request.reason,
    )
    return TokenResponse.model_validate(token)


# ==================== Maintenance ====================

@router.post(
    "/cleanup-expired",
    response_model=CleanupResponse,
    dependencies=[Depends(require_capability(Capability.RUN_MAINTENANCE))],
)
async def cleanup_expired(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CleanupResponse:
    """Archive students on expired slots, then clear expired active flags."""
    archived = await PlanTransitionService(db).archive_expired_slots()
    counts = await PlanService(db).cleanup_expired()
    return CleanupResponse(students_archived=archived, **counts)
