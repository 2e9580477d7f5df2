"""Admin review of renewal requests."""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.core.storage import ProofStorage, get_proof_storage
from src.domains.auth.dependencies import require_capability
from src.domains.auth.permissions import Capability
from src.domains.users.models import User

from .models import normalize_status
from .schemas import ApproveRequest, DecisionRequest, PaymentLinkRequest, RenewalResponse
from .service import RenewalService

router = APIRouter(prefix="/admin/renewal-requests", tags=["admin-renewals"])

Reviewer = Annotated[User, Depends(require_capability(Capability.REVIEW_RENEWALS))]


@router.get("", response_model=list[RenewalResponse])
async def list_requests(
    current_user: Reviewer,
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[RenewalResponse]:
    """List renewal requests, optionally by status (legacy names accepted)."""
    service = RenewalService(db)
    status = normalize_status(status_filter) if status_filter else None
    requests = await service.list_requests(status)
    return [RenewalResponse.from_request(r) for r in requests]


@router.get("/{request_id}", response_model=RenewalResponse)
async def get_request(
    request_id: UUID,
    current_user: Reviewer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RenewalResponse:
    service = RenewalService(db)
    return RenewalResponse.from_request(await service.get_request(request_id))


@router.put("/{request_id}/payment-link", response_model=RenewalResponse)
async def send_payment_link(
    request_id: UUID,
    request: PaymentLinkRequest,
    current_user: Reviewer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RenewalResponse:
    """Send the payment link for a pending request."""
    service = RenewalService(db)
    renewal = await service.send_payment_link(request_id, current_user.id, request.payment_link)
    return RenewalResponse.from_request(renewal)


@router.put("/{request_id}/approve", response_model=RenewalResponse)
async def approve_request(
    request_id: UUID,
    current_user: Reviewer,
    db: Annotated[AsyncSession, Depends(get_db)],
    request: ApproveRequest | None = None,
) -> RenewalResponse:
    """Approve a request whose proof was uploaded and assign the plan."""
    service = RenewalService(db)
    note = request.payment_decision_note if request else None
    renewal = await service.approve(request_id, current_user.id, note)
    return RenewalResponse.from_request(renewal)


@router.patch("/{request_id}/decision", response_model=RenewalResponse)
async def decide_request(
    request_id: UUID,
    request: DecisionRequest,
    current_user: Reviewer,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RenewalResponse:
    """Approve or reject a request whose proof was uploaded."""
    service = RenewalService(db)
    renewal = await service.decide(
        request_id,
        current_user.id,
        approved=request.decision == "approved",
        note=request.payment_decision_note,
    )
    return RenewalResponse.from_request(renewal)


@router.get("/{request_id}/proof/download")
async def download_proof(
    request_id: UUID,
    current_user: Reviewer,
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[ProofStorage, Depends(get_proof_storage)],
) -> Response:
    service = RenewalService(db, storage)
    renewal = await service.get_request(request_id)
    content, content_type, filename = await service.read_proof_file(renewal)
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
