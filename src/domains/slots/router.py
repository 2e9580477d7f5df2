"""Trainer plan and slot routes (``/personal``)."""
from typing import Annotated

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.domains.auth.dependencies import CurrentTrainer
from src.domains.plans.schemas import PlanResponse
from src.domains.plans.service import PlanService

from .schemas import ActiveTokensResponse, PlanStatusResponse, SlotVerdict, TokenListResponse
from .service import SlotService

router = APIRouter(prefix="/personal", tags=["personal"])


@router.get("/meu-plano", response_model=PlanStatusResponse)
async def get_my_plan(
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PlanStatusResponse:
    """Current plan, tokens and slot usage of the trainer."""
    service = SlotService(db)
    return await service.get_plan_status(current_user.id)


@router.get("/can-activate/{quantidade}", response_model=SlotVerdict)
async def can_activate(
    quantidade: Annotated[int, Path(ge=1)],
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SlotVerdict:
    """Check whether ``quantidade`` more students can be activated."""
    service = SlotService(db)
    return await service.can_activate(current_user.id, quantidade)


@router.get("/tokens-ativos", response_model=ActiveTokensResponse)
async def get_active_tokens(
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ActiveTokensResponse:
    """Total quantity of valid avulso tokens."""
    service = SlotService(db)
    ent = await service.load_entitlements(current_user.id)
    return ActiveTokensResponse(total_quantity=ent.tokens_total)


@router.get("/meus-tokens", response_model=TokenListResponse)
async def get_my_tokens(
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TokenListResponse:
    """Valid avulso tokens with their consumption."""
    service = SlotService(db)
    ent = await service.load_entitlements(current_user.id)
    return TokenListResponse(tokens=service.summarize_tokens(ent))


@router.get("/planos-disponiveis", response_model=list[PlanResponse])
async def list_available_plans(
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[PlanResponse]:
    """Active catalog plans, cheapest first."""
    service = PlanService(db)
    plans = await service.list_plans(active_only=True)
    return [PlanResponse.model_validate(p) for p in plans]
