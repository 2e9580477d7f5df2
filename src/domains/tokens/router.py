"""Token ledger routes."""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.domains.auth.dependencies import CurrentTrainer, require_capability
from src.domains.auth.permissions import Capability

from .migration import TokenMigrationService
from .schemas import MigrationResult, TokenAssignmentResponse, TokenStatusResponse
from .service import TokenService, to_legacy_view

router = APIRouter(prefix="/tokens", tags=["tokens"])


@router.get("/status", response_model=TokenStatusResponse)
async def get_token_status(
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TokenStatusResponse:
    """Slot summary and per-student consumption for the current trainer."""
    service = TokenService(db)
    return await service.get_token_status(current_user.id)


@router.get("/student/{student_id}", response_model=TokenAssignmentResponse)
async def get_student_token(
    student_id: UUID,
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TokenAssignmentResponse:
    """The slot held by one of the current trainer's students."""
    service = TokenService(db)
    assignment = await service.get_student_assignment(current_user.id, student_id)
    response = TokenAssignmentResponse.model_validate(assignment)
    response.legacy = to_legacy_view(assignment)
    return response


@router.post(
    "/migrate",
    response_model=MigrationResult,
    dependencies=[Depends(require_capability(Capability.RUN_MAINTENANCE))],
)
async def run_migration(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MigrationResult:
    """Migrate legacy tokens and generate plan tokens. Safe to repeat."""
    service = TokenMigrationService(db)
    return await service.run_complete_migration()
