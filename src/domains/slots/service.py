"""Slot availability evaluation.

A trainer's capacity is the current plan's ``student_limit`` plus the
unconsumed part of their valid avulso tokens. Validity is always derived
from expiry dates at evaluation time; nothing here writes to the database.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ValidationError
from src.core.models import utcnow
from src.domains.plans.models import PersonalPlanAssignment
from src.domains.plans.schemas import AssignmentResponse, PlanResponse
from src.domains.plans.service import PlanService
from src.domains.students.models import Student, StudentStatus
from src.domains.tokens.models import AssignmentType, Token, TokenAssignment, TokenKind

from .schemas import ActiveTokenSummary, PlanStatusResponse, SlotDetails, SlotVerdict


@dataclass
class Entitlements:
    """Everything that determines a trainer's capacity at one instant."""

    assignment: PersonalPlanAssignment | None
    tokens: list[Token]
    consumed_by_token: dict[uuid.UUID, int] = field(default_factory=dict)
    active_students: int = 0

    @property
    def plan_limit(self) -> int:
        if self.assignment is None or self.assignment.plan is None:
            return 0
        return self.assignment.plan.student_limit

    @property
    def tokens_total(self) -> int:
        return sum(token.quantity for token in self.tokens)

    @property
    def tokens_consumed(self) -> int:
        return sum(self.consumed_by_token.values())

    @property
    def tokens_available(self) -> int:
        return max(0, self.tokens_total - self.tokens_consumed)

    @property
    def total_limit(self) -> int:
        return self.plan_limit + self.tokens_available

    @property
    def available_slots(self) -> int:
        return max(0, self.total_limit - self.active_students)

    def token_capacity(self, token: Token) -> int:
        return max(0, token.quantity - self.consumed_by_token.get(token.id, 0))


class SlotService:
    """Read-only capacity checks for trainers."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.plans = PlanService(db)

    async def valid_tokens(self, trainer_id: uuid.UUID, now: datetime) -> list[Token]:
        """Avulso tokens that are active and unexpired, earliest expiry first."""
        query = (
            select(Token)
            .where(
                Token.trainer_id == trainer_id,
                Token.kind == TokenKind.AVULSO,
                Token.active == True,  # noqa: E712
                Token.expiry_date > now,
            )
            .order_by(Token.expiry_date, Token.created_at)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def consumed_by_token(self, token_ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
        if not token_ids:
            return {}
        query = (
            select(TokenAssignment.token_id, func.count(TokenAssignment.id))
            .where(
                TokenAssignment.type == AssignmentType.AVULSO,
                TokenAssignment.token_id.in_(token_ids),
            )
            .group_by(TokenAssignment.token_id)
        )
        result = await self.db.execute(query)
        return {token_id: count for token_id, count in result.all()}

    async def count_active_students(self, trainer_id: uuid.UUID) -> int:
        query = select(func.count(Student.id)).where(
            Student.trainer_id == trainer_id,
            Student.status == StudentStatus.ACTIVE,
        )
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def load_entitlements(self, trainer_id: uuid.UUID, now: datetime | None = None) -> Entitlements:
        now = now or utcnow()
        assignment = await self.plans.get_current_assignment(trainer_id, now=now)
        tokens = await self.valid_tokens(trainer_id, now)
        consumed = await self.consumed_by_token([token.id for token in tokens])
        active_students = await self.count_active_students(trainer_id)
        return Entitlements(
            assignment=assignment,
            tokens=tokens,
            consumed_by_token=consumed,
            active_students=active_students,
        )

    async def can_activate(
        self,
        trainer_id: uuid.UUID,
        requested_quantity: int = 1,
        now: datetime | None = None,
    ) -> SlotVerdict:
        """Decide whether ``requested_quantity`` more students fit.

        This is a check only. Callers activate afterwards, so two concurrent
        activations may both pass before either consumes a slot.

        A token consumed by an active student is subtracted from the token
        capacity and the student is also counted among the active students,
        so that student lowers availability twice. This is intended and
        matches what trainers have always been shown; do not change it.
        """
        if requested_quantity < 1:
            raise ValidationError("Quantidade deve ser pelo menos 1.")

        ent = await self.load_entitlements(trainer_id, now=now)
        available = ent.available_slots
        allowed = available >= requested_quantity

        message = None
        if not allowed:
            message = (
                f"Limite de alunos ativos atingido: {requested_quantity} vaga(s) solicitada(s), "
                f"{available} disponível(is) de {ent.total_limit} "
                f"(plano: {ent.plan_limit}, tokens: {ent.tokens_available})."
            )

        plan = ent.assignment.plan if ent.assignment else None
        return SlotVerdict(
            allowed=allowed,
            available_slots=available,
            current_limit=ent.total_limit,
            active_student_count=ent.active_students,
            message=message,
            details=SlotDetails(
                plan_active=ent.assignment is not None,
                plan_name=plan.name if plan else None,
                plan_limit=ent.plan_limit,
                tokens_total=ent.tokens_total,
                tokens_consumed=ent.tokens_consumed,
                tokens_available=ent.tokens_available,
                total_limit=ent.total_limit,
                active_students=ent.active_students,
                requested=requested_quantity,
            ),
        )

    async def get_plan_status(self, trainer_id: uuid.UUID, now: datetime | None = None) -> PlanStatusResponse:
        """Dashboard snapshot of the trainer's plan, tokens and usage."""
        now = now or utcnow()
        ent = await self.load_entitlements(trainer_id, now=now)

        assignment = ent.assignment
        is_expired = False
        if assignment is None:
            # Show the lapsed plan so the trainer knows what to renew
            assignment = await self.plans.get_latest_assignment(trainer_id)
            is_expired = assignment is not None

        limit = ent.total_limit
        usage = round(ent.active_students / limit * 100) if limit > 0 else 0

        return PlanStatusResponse(
            plan=PlanResponse.model_validate(assignment.plan) if assignment else None,
            assignment=AssignmentResponse.model_validate(assignment) if assignment else None,
            is_expired=is_expired,
            current_limit=limit,
            active_students=ent.active_students,
            tokens_available=ent.tokens_available,
            usage_percentage=usage,
            available_slots=ent.available_slots,
            can_activate_more=ent.available_slots > 0,
            tokens=self.summarize_tokens(ent),
        )

    @staticmethod
    def summarize_tokens(ent: Entitlements) -> list[ActiveTokenSummary]:
        return [
            ActiveTokenSummary(
                id=token.id,
                quantity=token.quantity,
                consumed=ent.consumed_by_token.get(token.id, 0),
                available=ent.token_capacity(token),
                expiry_date=token.expiry_date,
                created_at=token.created_at,
                reason=token.reason,
            )
            for token in ent.tokens
        ]
