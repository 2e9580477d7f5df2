"""Plan transitions.

Changing a trainer's plan rebinds every student who held a plan slot: they
are archived against the old assignment, the new plan is assigned, and then
they come back automatically on a first plan, a renewal or an upgrade. A
downgrade leaves the choice to the trainer, who reactivates students from
the eligible list until the new limit is reached.
"""
import uuid
from datetime import datetime, timedelta

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import DuplicateAssignment, SlotUnavailable, ValidationError
from src.core.models import utcnow
from src.domains.plans.models import PersonalPlanAssignment, Plan
from src.domains.plans.schemas import AssignmentResponse, PlanResponse
from src.domains.plans.service import PlanService
from src.domains.slots.service import SlotService
from src.domains.students.models import Student, StudentStatus
from src.domains.tokens.models import AssignmentType, Token, TokenAssignment
from src.domains.tokens.service import TokenService

from .models import HistoryReason, StudentPlanHistory
from .schemas import (
    EligibleStudent,
    PlanTransitionResult,
    ReactivationResult,
    TransitionPreview,
    TransitionType,
)

logger = structlog.get_logger(__name__)

REACTIVATION_WINDOW_DAYS = 30

TRANSITION_MESSAGES = {
    TransitionType.FIRST_TIME: "Plano atribuído com sucesso.",
    TransitionType.RENEWAL: "Plano renovado com sucesso.",
    TransitionType.UPGRADE: "Upgrade realizado com sucesso.",
    TransitionType.DOWNGRADE: "Downgrade realizado.",
}


def transition_message(kind: TransitionType, reactivated: int, pending: int) -> str:
    message = TRANSITION_MESSAGES[kind]
    if reactivated:
        message += f" {reactivated} aluno(s) reativado(s) automaticamente."
    if pending:
        message += f" {pending} aluno(s) aguardando seleção manual para reativação."
    return message


class PlanTransitionService:
    """Archives and reactivates students around plan changes."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.plans = PlanService(db)
        self.slots = SlotService(db)
        self.tokens = TokenService(db)

    # --- Detection ---

    async def detect_transition_type(
        self,
        trainer_id: uuid.UUID,
        new_plan: Plan,
        now: datetime | None = None,
    ) -> TransitionPreview:
        current = await self.plans.get_current_assignment(trainer_id, now=now)
        if current is None:
            return TransitionPreview(
                type=TransitionType.FIRST_TIME,
                current_plan=None,
                new_plan=PlanResponse.model_validate(new_plan),
                limit_difference=new_plan.student_limit,
            )

        difference = new_plan.student_limit - current.plan.student_limit
        if current.plan_id == new_plan.id or difference == 0:
            kind = TransitionType.RENEWAL
        elif difference > 0:
            kind = TransitionType.UPGRADE
        else:
            kind = TransitionType.DOWNGRADE

        return TransitionPreview(
            type=kind,
            current_plan=PlanResponse.model_validate(current.plan),
            new_plan=PlanResponse.model_validate(new_plan),
            limit_difference=difference,
        )

    async def preview(self, trainer_id: uuid.UUID, plan_id: uuid.UUID) -> TransitionPreview:
        plan = await self.plans.get_plan(plan_id)
        return await self.detect_transition_type(trainer_id, plan)

    # --- Archiving ---

    async def archive_student(
        self,
        student: Student,
        reason: HistoryReason,
        slot: TokenAssignment | None = None,
        now: datetime | None = None,
    ) -> StudentPlanHistory:
        """Record history, mark the student inactive and free their slot.

        Nothing is committed.
        """
        now = now or utcnow()
        if slot is None:
            slot = await self.tokens.get_assignment_for_student(student.id)

        previous_plan_id = None
        if slot is not None and slot.type == AssignmentType.PLAN:
            source = await self.db.get(PersonalPlanAssignment, slot.token_id)
            previous_plan_id = source.plan_id if source else None

        history = StudentPlanHistory(
            trainer_id=student.trainer_id,
            student_id=student.id,
            previous_plan_id=previous_plan_id,
            slot_source_id=slot.token_id if slot else None,
            slot_type=slot.type if slot else None,
            date_activated=slot.assigned_at if slot else student.created_at,
            date_deactivated=now,
            reason=reason,
            was_active=student.status == StudentStatus.ACTIVE,
            can_be_reactivated=reason.allows_reactivation,
        )
        self.db.add(history)
        student.status = StudentStatus.INACTIVE
        await self.tokens.release_slot(student.id, commit=False)
        return history

    async def _archive_slots(
        self,
        slots: list[TokenAssignment],
        reason: HistoryReason,
        now: datetime,
    ) -> int:
        archived = 0
        for slot in slots:
            student = await self.db.get(Student, slot.student_id)
            if student is None:
                continue
            await self.archive_student(student, reason, slot=slot, now=now)
            archived += 1
        await self.db.flush()
        return archived

    async def archive_plan_students(
        self,
        trainer_id: uuid.UUID,
        reason: HistoryReason,
        now: datetime | None = None,
    ) -> int:
        """Archive every student holding a plan slot. Nothing is committed."""
        now = now or utcnow()
        result = await self.db.execute(
            select(TokenAssignment).where(
                TokenAssignment.trainer_id == trainer_id,
                TokenAssignment.type == AssignmentType.PLAN,
            )
        )
        return await self._archive_slots(list(result.scalars().all()), reason, now)

    async def archive_expired_slots(self, now: datetime | None = None) -> int:
        """Archive students whose plan assignment or token is no longer valid."""
        now = now or utcnow()
        plan_slots = await self.db.execute(
            select(TokenAssignment)
            .join(PersonalPlanAssignment, PersonalPlanAssignment.id == TokenAssignment.token_id)
            .where(
                TokenAssignment.type == AssignmentType.PLAN,
                or_(
                    PersonalPlanAssignment.expiry_date <= now,
                    PersonalPlanAssignment.active == False,  # noqa: E712
                ),
            )
        )
        token_slots = await self.db.execute(
            select(TokenAssignment)
            .join(Token, Token.id == TokenAssignment.token_id)
            .where(
                TokenAssignment.type == AssignmentType.AVULSO,
                or_(Token.expiry_date <= now, Token.active == False),  # noqa: E712
            )
        )
        expired_plan_slots = list(plan_slots.scalars().all())
        expired_token_slots = list(token_slots.scalars().all())

        archived = await self._archive_slots(expired_plan_slots, HistoryReason.PLAN_EXPIRED, now)
        archived += await self._archive_slots(expired_token_slots, HistoryReason.TOKEN_EXPIRED, now)
        await self.db.commit()

        if archived:
            logger.info("expired_slots_archived", students=archived)
        return archived

    # --- Plan change ---

    async def change_plan(
        self,
        trainer_id: uuid.UUID,
        plan_id: uuid.UUID,
        admin_id: uuid.UUID | None = None,
        reason: str | None = None,
        custom_duration_days: int | None = None,
        now: datetime | None = None,
    ) -> PlanTransitionResult:
        """Assign a plan and move the trainer's plan students onto it.

        Archiving and the new assignment are committed together, along with
        any pending change the caller made on the same session.
        """
        now = now or utcnow()
        plan = await self.plans.get_plan(plan_id)
        if not plan.active:
            raise ValidationError("Plano inativo não pode ser atribuído.")

        preview = await self.detect_transition_type(trainer_id, plan, now=now)
        archive_reason = (
            HistoryReason.PLAN_EXPIRED
            if preview.type == TransitionType.FIRST_TIME
            else HistoryReason.PLAN_CHANGED
        )
        archived = await self.archive_plan_students(trainer_id, archive_reason, now=now)
        assignment = await self.plans.assign_plan(
            trainer_id,
            plan.id,
            admin_id=admin_id,
            reason=reason,
            custom_duration_days=custom_duration_days,
            now=now,
            commit=False,
        )
        await self.db.commit()
        assignment_view = AssignmentResponse.model_validate(assignment)

        reactivated = 0
        if preview.type != TransitionType.DOWNGRADE:
            reactivated = await self.reactivate_automatically(trainer_id, now=now)

        eligible = await self.get_eligible_students(trainer_id, now=now)
        ent = await self.slots.load_entitlements(trainer_id, now=now)

        logger.info(
            "plan_transition",
            trainer_id=str(trainer_id),
            transition=preview.type.value,
            plan=plan.name,
            archived=archived,
            reactivated=reactivated,
            pending=len(eligible),
        )
        return PlanTransitionResult(
            transition_type=preview.type,
            assignment=assignment_view,
            archived_students=archived,
            reactivated_students=reactivated,
            students_requiring_manual_selection=len(eligible),
            eligible_students=eligible,
            available_slots=ent.available_slots,
            message=transition_message(preview.type, reactivated, len(eligible)),
        )

    # --- Reactivation ---

    async def get_eligible_students(
        self,
        trainer_id: uuid.UUID,
        now: datetime | None = None,
        within_days: int = REACTIVATION_WINDOW_DAYS,
    ) -> list[EligibleStudent]:
        """Inactive students archived recently for a plan or token reason.

        Most recently archived first, one entry per student.
        """
        now = now or utcnow()
        query = (
            select(StudentPlanHistory, Student, Plan.name)
            .join(Student, Student.id == StudentPlanHistory.student_id)
            .outerjoin(Plan, Plan.id == StudentPlanHistory.previous_plan_id)
            .where(
                StudentPlanHistory.trainer_id == trainer_id,
                StudentPlanHistory.was_active == True,  # noqa: E712
                StudentPlanHistory.can_be_reactivated == True,  # noqa: E712
                StudentPlanHistory.reactivated_at.is_(None),
                StudentPlanHistory.date_deactivated >= now - timedelta(days=within_days),
                Student.status == StudentStatus.INACTIVE,
            )
            .order_by(StudentPlanHistory.date_deactivated.desc(), StudentPlanHistory.created_at.desc())
        )
        result = await self.db.execute(query)

        eligible: dict[uuid.UUID, EligibleStudent] = {}
        for history, student, plan_name in result.all():
            if student.id in eligible:
                continue
            eligible[student.id] = EligibleStudent(
                student_id=student.id,
                student_name=student.name,
                student_email=student.email,
                date_deactivated=history.date_deactivated,
                previous_plan_name=plan_name,
                reason=history.reason,
            )
        return list(eligible.values())

    async def _reactivate(self, student: Student, now: datetime) -> None:
        await self.tokens.consume_slot(student.trainer_id, student.id, now=now, commit=False)
        student.status = StudentStatus.ACTIVE
        await self.db.execute(
            update(StudentPlanHistory)
            .where(
                StudentPlanHistory.student_id == student.id,
                StudentPlanHistory.reactivated_at.is_(None),
            )
            .values(reactivated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()

    async def reactivate_automatically(self, trainer_id: uuid.UUID, now: datetime | None = None) -> int:
        """Bring eligible students back while slots last."""
        now = now or utcnow()
        reactivated = 0
        for candidate in await self.get_eligible_students(trainer_id, now=now):
            student = await self.db.get(Student, candidate.student_id)
            try:
                await self._reactivate(student, now)
            except SlotUnavailable:
                break
            except DuplicateAssignment:
                logger.warning("reactivation_skipped", student_id=str(candidate.student_id))
                continue
            reactivated += 1
        return reactivated

    async def reactivate_students(
        self,
        trainer_id: uuid.UUID,
        student_ids: list[uuid.UUID],
        now: datetime | None = None,
    ) -> ReactivationResult:
        """Reactivate the students a trainer picked.

        The whole selection must fit in the available slots. Students that
        cannot be reactivated are reported in ``errors``.
        """
        now = now or utcnow()
        verdict = await self.slots.can_activate(trainer_id, len(student_ids), now=now)
        if not verdict.allowed:
            raise SlotUnavailable(verdict.message, details=verdict.details.model_dump())

        reactivated = 0
        errors: list[str] = []
        for student_id in student_ids:
            student = await self.db.get(Student, student_id)
            if student is None or student.trainer_id != trainer_id:
                errors.append(f"Aluno {student_id} não encontrado.")
                continue
            name = student.name
            if student.status == StudentStatus.ACTIVE:
                errors.append(f"Aluno {name} já está ativo.")
                continue
            try:
                await self._reactivate(student, now)
            except (DuplicateAssignment, SlotUnavailable) as e:
                errors.append(f"Aluno {name}: {e.message}")
                continue
            reactivated += 1

        logger.info(
            "students_reactivated",
            trainer_id=str(trainer_id),
            reactivated=reactivated,
            errors=len(errors),
        )
        return ReactivationResult(reactivated_count=reactivated, errors=errors)

    async def list_history(self, trainer_id: uuid.UUID, limit: int = 100) -> list[StudentPlanHistory]:
        result = await self.db.execute(
            select(StudentPlanHistory)
            .where(StudentPlanHistory.trainer_id == trainer_id)
            .order_by(StudentPlanHistory.date_deactivated.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
