"""Renewal request workflow.

    pending -> payment_link_sent -> payment_proof_uploaded -> approved | rejected

A proof may be attached from any non-terminal state. Approval is the only
transition that changes the trainer's plan.
"""
import uuid

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import (
    ConflictError,
    InternalError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from src.core.models import utcnow
from src.core.storage import (
    FileTooLargeError,
    InvalidContentTypeError,
    ProofStorage,
    StorageError,
    proof_storage,
)
from src.domains.notifications.models import NotificationType
from src.domains.notifications.service import send_notification
from src.domains.plans.service import PlanService
from src.domains.transitions.service import PlanTransitionService

from .models import LEGACY_STATUS_ALIASES, ProofKind, RenewalRequest, RenewalStatus

logger = structlog.get_logger(__name__)


def stored_values(status: RenewalStatus) -> list[str]:
    """Every stored spelling that normalizes to ``status``."""
    return [status.value] + [alias for alias, target in LEGACY_STATUS_ALIASES.items() if target == status]


class RenewalService:
    """Drives renewal requests through their states."""

    def __init__(self, db: AsyncSession, storage: ProofStorage | None = None):
        self.db = db
        self.storage = storage or proof_storage
        self.plans = PlanService(db)
        self.transitions = PlanTransitionService(db)

    # --- Queries ---

    async def get_request(self, request_id: uuid.UUID) -> RenewalRequest:
        request = await self.db.get(RenewalRequest, request_id)
        if request is None:
            raise NotFoundError("Solicitação de renovação não encontrada.")
        return request

    async def get_owned_request(self, request_id: uuid.UUID, personal_id: uuid.UUID) -> RenewalRequest:
        request = await self.get_request(request_id)
        if request.personal_id != personal_id:
            raise NotFoundError("Solicitação de renovação não encontrada.")
        return request

    async def list_for_personal(self, personal_id: uuid.UUID) -> list[RenewalRequest]:
        query = (
            select(RenewalRequest)
            .where(RenewalRequest.personal_id == personal_id)
            .order_by(RenewalRequest.requested_at.desc())
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_requests(self, status: RenewalStatus | None = None) -> list[RenewalRequest]:
        query = select(RenewalRequest).order_by(RenewalRequest.requested_at.desc())
        if status is not None:
            query = query.where(RenewalRequest.status.in_(stored_values(status)))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_open_request(self, personal_id: uuid.UUID) -> RenewalRequest | None:
        for request in await self.list_for_personal(personal_id):
            if not request.state.is_terminal:
                return request
        return None

    async def _notify(self, request: RenewalRequest, message: str, notification_type: NotificationType) -> None:
        sent = await send_notification(self.db, request.personal_id, message, notification_type)
        if sent is None:
            # The failed insert rolled the session back and expired the request
            await self.db.refresh(request)

    # --- Transitions ---

    def _ensure_state(
        self,
        request: RenewalRequest,
        target: RenewalStatus,
        allowed_from: set[RenewalStatus],
    ) -> None:
        current = request.state
        if current not in allowed_from:
            raise InvalidStateTransition(
                f"Não é possível passar de '{current.value}' para '{target.value}'.",
                details={"de": current.value, "para": target.value},
            )

    async def create_request(
        self,
        personal_id: uuid.UUID,
        plan_id: uuid.UUID,
        notes: str | None = None,
        student_id: uuid.UUID | None = None,
    ) -> RenewalRequest:
        plan = await self.plans.get_plan(plan_id)
        if not plan.active:
            raise ValidationError("Plano solicitado não está disponível.")

        if await self.get_open_request(personal_id) is not None:
            raise ConflictError("Já existe uma solicitação de renovação em andamento.")

        request = RenewalRequest(
            personal_id=personal_id,
            plan_id=plan.id,
            student_id=student_id,
            status=RenewalStatus.PENDING.value,
            notes=notes,
            requested_at=utcnow(),
        )
        self.db.add(request)
        await self.db.commit()
        await self.db.refresh(request)

        logger.info("renewal_requested", request_id=str(request.id), personal_id=str(personal_id), plan=plan.name)
        return request

    async def send_payment_link(
        self,
        request_id: uuid.UUID,
        admin_id: uuid.UUID,
        link: str,
    ) -> RenewalRequest:
        request = await self.get_request(request_id)
        self._ensure_state(request, RenewalStatus.PAYMENT_LINK_SENT, {RenewalStatus.PENDING})

        request.payment_link = link
        request.admin_id = admin_id
        request.link_sent_at = utcnow()
        request.status = RenewalStatus.PAYMENT_LINK_SENT.value
        await self.db.commit()

        logger.info("renewal_payment_link_sent", request_id=str(request.id), admin_id=str(admin_id))
        await self._notify(
            request,
            "O link de pagamento da sua renovação está disponível.",
            NotificationType.RENEWAL_LINK_SENT,
        )
        return request

    async def submit_proof(
        self,
        request_id: uuid.UUID,
        personal_id: uuid.UUID,
        link: str | None = None,
        file_content: bytes | None = None,
        content_type: str | None = None,
        filename: str | None = None,
    ) -> RenewalRequest:
        """Attach a payment proof: either a link or an uploaded file."""
        if (link is None) == (file_content is None):
            raise ValidationError("Envie um link ou um arquivo de comprovante, não ambos.")

        request = await self.get_owned_request(request_id, personal_id)
        self._ensure_state(
            request,
            RenewalStatus.PAYMENT_PROOF_UPLOADED,
            {RenewalStatus.PENDING, RenewalStatus.PAYMENT_LINK_SENT, RenewalStatus.PAYMENT_PROOF_UPLOADED},
        )

        previous = request.proof
        if link is not None:
            link = link.strip()
            if not link:
                raise ValidationError("Link do comprovante não pode ser vazio.")
            proof = {"kind": ProofKind.LINK.value, "url": link}
            request.payment_proof_url = link
        else:
            try:
                proof = await self.storage.save_proof(
                    str(personal_id),
                    file_content,
                    content_type or "application/octet-stream",
                    filename,
                )
            except (FileTooLargeError, InvalidContentTypeError) as e:
                raise ValidationError(str(e)) from e
            except StorageError as e:
                raise InternalError("Falha ao armazenar o comprovante.") from e
            request.payment_proof_url = None

        request.proof = proof
        request.proof_uploaded_at = utcnow()
        request.status = RenewalStatus.PAYMENT_PROOF_UPLOADED.value
        await self.db.commit()

        if previous and previous.get("kind") == ProofKind.FILE.value:
            await self.storage.delete_proof(previous["file_id"])

        logger.info("renewal_proof_submitted", request_id=str(request.id), kind=proof["kind"])
        return request

    async def approve(
        self,
        request_id: uuid.UUID,
        admin_id: uuid.UUID,
        note: str | None = None,
    ) -> RenewalRequest:
        """Confirm payment and put the trainer on the requested plan.

        The status change and the new plan assignment are committed
        together. The status only moves if it is still
        ``payment_proof_uploaded`` when the update runs, so a concurrent
        approval fails instead of assigning the plan twice.
        """
        request = await self.get_request(request_id)
        self._ensure_state(request, RenewalStatus.APPROVED, {RenewalStatus.PAYMENT_PROOF_UPLOADED})
        if request.plan_id is None:
            raise ValidationError("Solicitação sem plano definido.")

        request_key, trainer_id, plan_id = request.id, request.personal_id, request.plan_id
        processed_at = utcnow()
        result = await self.db.execute(
            update(RenewalRequest)
            .where(
                RenewalRequest.id == request_key,
                RenewalRequest.status.in_(stored_values(RenewalStatus.PAYMENT_PROOF_UPLOADED)),
            )
            .values(
                status=RenewalStatus.APPROVED.value,
                admin_id=admin_id,
                payment_decision_note=note,
                processed_at=processed_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise InvalidStateTransition(
                "Solicitação já processada por outra operação.",
                details={"de": RenewalStatus.PAYMENT_PROOF_UPLOADED.value, "para": RenewalStatus.APPROVED.value},
            )

        try:
            transition = await self.transitions.change_plan(
                trainer_id,
                plan_id,
                admin_id=admin_id,
                reason=f"Renovação aprovada ({request_key})",
                now=processed_at,
            )
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(request)
        logger.info(
            "renewal_approved",
            request_id=str(request_key),
            admin_id=str(admin_id),
            transition=transition.transition_type.value,
        )
        assignment = transition.assignment
        expiry = assignment.expiry_date.strftime("%d/%m/%Y")
        await self._notify(
            request,
            f"Sua renovação foi aprovada. Plano {assignment.plan.name} ativo até {expiry}.",
            NotificationType.RENEWAL_APPROVED,
        )
        return request

    async def reject(
        self,
        request_id: uuid.UUID,
        admin_id: uuid.UUID,
        note: str | None = None,
    ) -> RenewalRequest:
        request = await self.get_request(request_id)
        self._ensure_state(request, RenewalStatus.REJECTED, {RenewalStatus.PAYMENT_PROOF_UPLOADED})

        request.status = RenewalStatus.REJECTED.value
        request.admin_id = admin_id
        request.payment_decision_note = note
        request.processed_at = utcnow()
        await self.db.commit()

        logger.info("renewal_rejected", request_id=str(request.id), admin_id=str(admin_id))
        message = "Sua solicitação de renovação foi rejeitada."
        if note:
            message = f"{message} Motivo: {note}"
        await self._notify(request, message, NotificationType.RENEWAL_REJECTED)
        return request

    async def decide(
        self,
        request_id: uuid.UUID,
        admin_id: uuid.UUID,
        approved: bool,
        note: str | None = None,
    ) -> RenewalRequest:
        if approved:
            return await self.approve(request_id, admin_id, note)
        return await self.reject(request_id, admin_id, note)

    async def read_proof_file(self, request: RenewalRequest) -> tuple[bytes, str, str]:
        """Contents, content type and filename of an uploaded proof."""
        proof = request.proof
        if not proof or proof.get("kind") != ProofKind.FILE.value:
            raise NotFoundError("Esta solicitação não possui arquivo de comprovante.")
        try:
            content = await self.storage.read_proof(proof["file_id"])
        except StorageError as e:
            raise NotFoundError("Arquivo de comprovante não encontrado.") from e
        return content, proof.get("content_type", "application/octet-stream"), proof.get("filename", "comprovante")
