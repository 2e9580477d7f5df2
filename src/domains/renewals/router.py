"""Trainer-facing renewal request routes."""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.core.storage import ProofStorage, get_proof_storage
from src.domains.auth.dependencies import CurrentTrainer

from .schemas import RenewalCreate, RenewalResponse
from .service import RenewalService

router = APIRouter(prefix="/personal/renewal-requests", tags=["renewals"])


@router.get("", response_model=list[RenewalResponse])
async def list_my_requests(
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[RenewalResponse]:
    """List the current trainer's renewal requests, newest first."""
    service = RenewalService(db)
    requests = await service.list_for_personal(current_user.id)
    return [RenewalResponse.from_request(r) for r in requests]


@router.post("", response_model=RenewalResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    request: RenewalCreate,
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RenewalResponse:
    """Ask an admin to renew or change the current plan."""
    service = RenewalService(db)
    renewal = await service.create_request(
        current_user.id,
        request.plan_id,
        notes=request.notes,
        student_id=request.student_id,
    )
    return RenewalResponse.from_request(renewal)


@router.get("/{request_id}", response_model=RenewalResponse)
async def get_request(
    request_id: UUID,
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RenewalResponse:
    service = RenewalService(db)
    renewal = await service.get_owned_request(request_id, current_user.id)
    return RenewalResponse.from_request(renewal)


@router.post("/{request_id}/proof", response_model=RenewalResponse)
async def submit_proof(
    request_id: UUID,
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[ProofStorage, Depends(get_proof_storage)],
    file: Annotated[UploadFile | None, File()] = None,
    link: Annotated[str | None, Form()] = None,
) -> RenewalResponse:
    """Attach a payment proof (JPEG, PNG or PDF up to 10MB, or a link)."""
    service = RenewalService(db, storage)
    if file is not None:
        content = await file.read()
        renewal = await service.submit_proof(
            request_id,
            current_user.id,
            link=link,
            file_content=content,
            content_type=file.content_type,
            filename=file.filename,
        )
    else:
        renewal = await service.submit_proof(request_id, current_user.id, link=link)
    return RenewalResponse.from_request(renewal)


@router.get("/{request_id}/proof/download")
async def download_proof(
    request_id: UUID,
    current_user: CurrentTrainer,
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[ProofStorage, Depends(get_proof_storage)],
) -> Response:
    service = RenewalService(db, storage)
    renewal = await service.get_owned_request(request_id, current_user.id)
    content, content_type, filename = await service.read_proof_file(renewal)
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
