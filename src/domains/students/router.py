"""Student router for the trainer's roster."""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.domains.auth.dependencies import CurrentTrainer

from .models import StudentStatus
from .schemas import StudentCreate, StudentResponse, StudentStatusUpdate
from .service import StudentService

router = APIRouter(prefix="/students", tags=["students"])


@router.get("", response_model=list[StudentResponse])
async def list_students(
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: Annotated[StudentStatus | None, Query(alias="status")] = None,
) -> list[StudentResponse]:
    """List the current trainer's students."""
    service = StudentService(db)
    students = await service.list_students(current_user.id, status_filter)
    return [StudentResponse.model_validate(s) for s in students]


@router.post("", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
async def create_student(
    request: StudentCreate,
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> StudentResponse:
    """Register a student. Active students must fit in the trainer's slots."""
    service = StudentService(db)
    student = await service.create_student(current_user.id, request)
    return StudentResponse.model_validate(student)


@router.get("/{student_id}", response_model=StudentResponse)
async def get_student(
    student_id: UUID,
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> StudentResponse:
    service = StudentService(db)
    student = await service.get_student(current_user.id, student_id)
    return StudentResponse.model_validate(student)


@router.patch("/{student_id}/status", response_model=StudentResponse)
async def update_student_status(
    student_id: UUID,
    request: StudentStatusUpdate,
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> StudentResponse:
    """Activate (consumes a slot) or deactivate (frees it) a student."""
    service = StudentService(db)
    student = await service.set_status(
        current_user.id,
        student_id,
        request.status,
        request.preferred_source,
    )
    return StudentResponse.model_validate(student)


@router.delete("/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_student(
    student_id: UUID,
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    """Delete a student and release their slot."""
    service = StudentService(db)
    await service.delete_student(current_user.id, student_id)
