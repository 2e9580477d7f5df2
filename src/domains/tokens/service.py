"""Token ledger: grants, slot consumption and release."""
import uuid
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.core.exceptions import DuplicateAssignment, NotFoundError, SlotUnavailable
from src.core.models import as_utc, utcnow
from src.domains.slots.service import Entitlements, SlotService
from src.domains.students.models import Student

from .models import AssignmentType, Token, TokenAssignment, TokenKind
from .schemas import StudentConsumption, TokenStatusResponse

logger = structlog.get_logger(__name__)


def to_legacy_view(assignment: TokenAssignment) -> dict[str, Any]:
    """Field names used by clients written against the old token API."""
    return {
        "tokenId": str(assignment.token_id),
        "studentId": str(assignment.student_id),
        "personalTrainerId": str(assignment.trainer_id),
        "type": "plano" if assignment.type == AssignmentType.PLAN else "avulso",
        "validUntil": as_utc(assignment.valid_until).isoformat(),
        "assignedAt": as_utc(assignment.assigned_at).isoformat(),
    }


class TokenService:
    """Grants tokens and binds students to plan or token slots."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.slots = SlotService(db)

    async def add_tokens(
        self,
        trainer_id: uuid.UUID,
        quantity: int,
        admin_id: uuid.UUID,
        days: int | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> Token:
        now = now or utcnow()
        token = Token(
            trainer_id=trainer_id,
            quantity=quantity,
            expiry_date=now + timedelta(days=days or settings.DEFAULT_TOKEN_DAYS),
            active=True,
            reason=reason,
            granted_by_admin_id=admin_id,
            kind=TokenKind.AVULSO,
        )
        self.db.add(token)
        await self.db.commit()
        await self.db.refresh(token)

        logger.info(
            "tokens_granted",
            trainer_id=str(trainer_id),
            quantity=quantity,
            admin_id=str(admin_id),
            expiry_date=token.expiry_date.isoformat(),
        )
        return token

    async def list_tokens(
        self,
        trainer_id: uuid.UUID,
        now: datetime | None = None,
        expired_within_days: int = 30,
    ) -> tuple[list[Token], list[Token]]:
        """Valid avulso tokens, and those that lapsed recently."""
        now = now or utcnow()
        valid = await self.slots.valid_tokens(trainer_id, now)
        query = (
            select(Token)
            .where(
                Token.trainer_id == trainer_id,
                Token.kind == TokenKind.AVULSO,
                Token.expiry_date <= now,
                Token.expiry_date >= now - timedelta(days=expired_within_days),
            )
            .order_by(Token.expiry_date.desc())
        )
        result = await self.db.execute(query)
        return valid, list(result.scalars().all())

    async def get_assignment_for_student(self, student_id: uuid.UUID) -> TokenAssignment | None:
        result = await self.db.execute(
            select(TokenAssignment).where(TokenAssignment.student_id == student_id)
        )
        return result.scalar_one_or_none()

    async def count_plan_consumption(self, plan_assignment_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(TokenAssignment.id)).where(
                TokenAssignment.type == AssignmentType.PLAN,
                TokenAssignment.token_id == plan_assignment_id,
            )
        )
        return result.scalar() or 0

    async def _pick_source(
        self,
        ent: Entitlements,
        preferred_source: AssignmentType,
    ) -> tuple[AssignmentType, uuid.UUID, datetime] | None:
        plan_source = None
        if ent.assignment is not None and ent.plan_limit > 0:
            used = await self.count_plan_consumption(ent.assignment.id)
            if used < ent.plan_limit:
                plan_source = (AssignmentType.PLAN, ent.assignment.id, ent.assignment.expiry_date)

        token_source = None
        for token in ent.tokens:
            if ent.token_capacity(token) > 0:
                token_source = (AssignmentType.AVULSO, token.id, token.expiry_date)
                break

        if preferred_source == AssignmentType.AVULSO:
            return token_source or plan_source
        return plan_source or token_source

    async def consume_slot(
        self,
        trainer_id: uuid.UUID,
        student_id: uuid.UUID,
        preferred_source: AssignmentType = AssignmentType.PLAN,
        now: datetime | None = None,
        commit: bool = True,
    ) -> TokenAssignment:
        """Bind one slot to ``student_id``.

        Raises DuplicateAssignment when the student already holds a slot and
        SlotUnavailable when the trainer has no capacity left. With
        ``commit=False`` the assignment is flushed and left for the caller to
        commit.
        """
        if await self.get_assignment_for_student(student_id) is not None:
            raise DuplicateAssignment()

        verdict = await self.slots.can_activate(trainer_id, 1, now=now)
        if not verdict.allowed:
            raise SlotUnavailable(verdict.message, details=verdict.details.model_dump())

        ent = await self.slots.load_entitlements(trainer_id, now=now)
        source = await self._pick_source(ent, preferred_source)
        if source is None:
            raise SlotUnavailable(
                "Nenhuma vaga livre no plano ou nos tokens.",
                details=verdict.details.model_dump(),
            )

        source_type, source_id, valid_until = source
        assignment = TokenAssignment(
            token_id=source_id,
            student_id=student_id,
            trainer_id=trainer_id,
            type=source_type,
            valid_until=valid_until,
            assigned_at=now or utcnow(),
        )
        self.db.add(assignment)
        try:
            if commit:
                await self.db.commit()
            else:
                await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateAssignment() from e

        logger.info(
            "slot_consumed",
            trainer_id=str(trainer_id),
            student_id=str(student_id),
            source=source_type.value,
            source_id=str(source_id),
        )
        return assignment

    async def release_slot(self, student_id: uuid.UUID, commit: bool = True) -> bool:
        """Free the student's slot. Returns False when there was none."""
        result = await self.db.execute(
            delete(TokenAssignment).where(TokenAssignment.student_id == student_id)
        )
        if commit:
            await self.db.commit()
        released = (result.rowcount or 0) > 0
        if released:
            logger.info("slot_released", student_id=str(student_id))
        return released

    async def get_student_assignment(self, trainer_id: uuid.UUID, student_id: uuid.UUID) -> TokenAssignment:
        """The slot held by one of the trainer's own students."""
        student = await self.db.get(Student, student_id)
        if student is None or student.trainer_id != trainer_id:
            raise NotFoundError("Aluno não encontrado.")

        assignment = await self.get_assignment_for_student(student_id)
        if assignment is None:
            raise NotFoundError("Token não encontrado para este aluno.")
        return assignment

    async def get_token_status(self, trainer_id: uuid.UUID, now: datetime | None = None) -> TokenStatusResponse:
        ent = await self.slots.load_entitlements(trainer_id, now=now)
        plan_consumed = 0
        if ent.assignment is not None:
            plan_consumed = await self.count_plan_consumption(ent.assignment.id)

        query = (
            select(TokenAssignment, Student.name)
            .join(Student, Student.id == TokenAssignment.student_id)
            .where(TokenAssignment.trainer_id == trainer_id)
            .order_by(TokenAssignment.assigned_at)
        )
        result = await self.db.execute(query)
        consumption = [
            StudentConsumption(
                student_id=assignment.student_id,
                student_name=name,
                type=assignment.type,
                token_id=assignment.token_id,
                valid_until=assignment.valid_until,
            )
            for assignment, name in result.all()
        ]

        return TokenStatusResponse(
            plan_limit=ent.plan_limit,
            plan_consumed=plan_consumed,
            tokens_total=ent.tokens_total,
            tokens_consumed=ent.tokens_consumed,
            tokens_available=ent.tokens_available,
            total_limit=ent.total_limit,
            active_students=ent.active_students,
            available_slots=ent.available_slots,
            consumption=consumption,
        )
