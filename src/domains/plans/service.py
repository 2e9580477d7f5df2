"""Plan catalog and trainer plan assignment service."""
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.core.models import utcnow
from src.domains.tokens.models import Token

from .models import PersonalPlanAssignment, Plan, PlanKind
from .schemas import PlanCreate, PlanUpdate

logger = structlog.get_logger(__name__)

FREE_PLAN_NAME = "Free"
FREE_PLAN_REASON = "Plano gratuito automático"

INITIAL_PLANS = [
    {
        "name": FREE_PLAN_NAME,
        "description": "Plano gratuito por 7 dias com 1 aluno ativo",
        "student_limit": 1,
        "price": Decimal("0"),
        "duration_days": 7,
        "kind": PlanKind.FREE,
    },
    {
        "name": "Start",
        "description": "Plano inicial para até 5 alunos ativos",
        "student_limit": 5,
        "price": Decimal("29.90"),
        "duration_days": 30,
        "kind": PlanKind.PAID,
    },
    {
        "name": "Pro",
        "description": "Plano profissional para até 10 alunos ativos",
        "student_limit": 10,
        "price": Decimal("49.90"),
        "duration_days": 30,
        "kind": PlanKind.PAID,
    },
    {
        "name": "Elite",
        "description": "Plano elite para até 20 alunos ativos",
        "student_limit": 20,
        "price": Decimal("79.90"),
        "duration_days": 30,
        "kind": PlanKind.PAID,
    },
    {
        "name": "Master",
        "description": "Plano master para até 50 alunos ativos",
        "student_limit": 50,
        "price": Decimal("129.90"),
        "duration_days": 30,
        "kind": PlanKind.PAID,
    },
]


class PlanService:
    """Catalog management and plan assignment for trainers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Catalog ---

    async def list_plans(self, active_only: bool = True) -> list[Plan]:
        query = select(Plan).order_by(Plan.price, Plan.name)
        if active_only:
            query = query.where(Plan.active == True)  # noqa: E712
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_plan(self, plan_id: uuid.UUID) -> Plan:
        plan = await self.db.get(Plan, plan_id)
        if plan is None:
            raise NotFoundError("Plano não encontrado.")
        return plan

    async def get_plan_by_name(self, name: str) -> Plan | None:
        result = await self.db.execute(select(Plan).where(Plan.name == name))
        return result.scalar_one_or_none()

    async def ensure_initial_plans(self) -> int:
        """Seed the default catalog when no active plan exists.

        Returns the number of plans created.
        """
        result = await self.db.execute(
            select(func.count(Plan.id)).where(Plan.active == True)  # noqa: E712
        )
        if (result.scalar() or 0) > 0:
            return 0

        created = 0
        for data in INITIAL_PLANS:
            if await self.get_plan_by_name(data["name"]) is None:
                self.db.add(Plan(**data, active=True))
                created += 1
        await self.db.commit()

        logger.info("initial_plans_seeded", created=created)
        return created

    async def create_plan(self, data: PlanCreate) -> Plan:
        if await self.get_plan_by_name(data.name) is not None:
            raise ConflictError(f"Já existe um plano com o nome '{data.name}'.")

        plan = Plan(**data.model_dump())
        self.db.add(plan)
        await self.db.commit()
        await self.db.refresh(plan)

        logger.info("plan_created", plan_id=str(plan.id), name=plan.name)
        return plan

    async def is_plan_referenced(self, plan_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(func.count(PersonalPlanAssignment.id)).where(
                PersonalPlanAssignment.plan_id == plan_id
            )
        )
        return (result.scalar() or 0) > 0

    async def update_plan(self, plan_id: uuid.UUID, data: PlanUpdate) -> Plan:
        """Update a plan.

        Plans already assigned to someone only accept toggling ``active``;
        their terms are part of existing assignments.
        """
        plan = await self.get_plan(plan_id)
        changes = data.model_dump(exclude_unset=True)

        term_changes = {
            field: value
            for field, value in changes.items()
            if field != "active" and getattr(plan, field) != value
        }
        if term_changes and await self.is_plan_referenced(plan_id):
            raise ConflictError(
                "Plano já atribuído a personais; apenas o status ativo pode ser alterado.",
                details={"campos": sorted(term_changes)},
            )

        new_name = changes.get("name")
        if new_name and new_name != plan.name and await self.get_plan_by_name(new_name):
            raise ConflictError(f"Já existe um plano com o nome '{new_name}'.")

        for field, value in changes.items():
            setattr(plan, field, value)

        await self.db.commit()
        await self.db.refresh(plan)

        logger.info("plan_updated", plan_id=str(plan.id), fields=sorted(changes))
        return plan

    # --- Assignments ---

    async def get_current_assignment(
        self,
        trainer_id: uuid.UUID,
        now: datetime | None = None,
    ) -> PersonalPlanAssignment | None:
        """The assignment that currently grants slots, if any.

        If several rows are active and unexpired, the latest expiry wins.
        """
        now = now or utcnow()
        query = (
            select(PersonalPlanAssignment)
            .where(
                PersonalPlanAssignment.trainer_id == trainer_id,
                PersonalPlanAssignment.active == True,  # noqa: E712
                PersonalPlanAssignment.expiry_date > now,
            )
            .order_by(PersonalPlanAssignment.expiry_date.desc())
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.unique().scalar_one_or_none()

    async def get_latest_assignment(self, trainer_id: uuid.UUID) -> PersonalPlanAssignment | None:
        """Most recent assignment regardless of validity."""
        query = (
            select(PersonalPlanAssignment)
            .where(PersonalPlanAssignment.trainer_id == trainer_id)
            .order_by(PersonalPlanAssignment.expiry_date.desc())
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.unique().scalar_one_or_none()

    async def get_plan_history(self, trainer_id: uuid.UUID, limit: int = 10) -> list[PersonalPlanAssignment]:
        query = (
            select(PersonalPlanAssignment)
            .where(PersonalPlanAssignment.trainer_id == trainer_id)
            .order_by(PersonalPlanAssignment.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.unique().scalars().all())

    async def assign_plan(
        self,
        trainer_id: uuid.UUID,
        plan_id: uuid.UUID,
        admin_id: uuid.UUID | None = None,
        reason: str | None = None,
        custom_duration_days: int | None = None,
        now: datetime | None = None,
        commit: bool = True,
    ) -> PersonalPlanAssignment:
        """Put a trainer on a plan starting now.

        Every previously active assignment of the trainer is deactivated first.
        With ``commit=False`` the rows are only flushed, so the caller can
        commit them together with its own changes.
        """
        plan = await self.get_plan(plan_id)
        if not plan.active:
            raise ValidationError("Plano inativo não pode ser atribuído.")

        duration = custom_duration_days or plan.duration_days
        start = now or utcnow()
        expiry = start + timedelta(days=duration)
        if expiry <= start:
            raise ValidationError("A data de vencimento deve ser posterior à data de início.")

        await self.db.execute(
            update(PersonalPlanAssignment)
            .where(
                PersonalPlanAssignment.trainer_id == trainer_id,
                PersonalPlanAssignment.active == True,  # noqa: E712
            )
            .values(active=False)
        )

        assignment = PersonalPlanAssignment(
            trainer_id=trainer_id,
            plan_id=plan.id,
            start_date=start,
            expiry_date=expiry,
            active=True,
            assigned_by_admin_id=admin_id,
            reason=reason,
        )
        self.db.add(assignment)
        if commit:
            await self.db.commit()
        else:
            await self.db.flush()
        await self.db.refresh(assignment)

        logger.info(
            "plan_assigned",
            trainer_id=str(trainer_id),
            plan=plan.name,
            expiry_date=expiry.isoformat(),
            admin_id=str(admin_id) if admin_id else None,
        )
        return assignment

    async def assign_free_plan(self, trainer_id: uuid.UUID) -> PersonalPlanAssignment | None:
        """Automatic free-tier assignment for newly created trainers."""
        plan = await self.get_plan_by_name(FREE_PLAN_NAME)
        if plan is None or not plan.active:
            logger.warning("free_plan_unavailable", trainer_id=str(trainer_id))
            return None
        return await self.assign_plan(trainer_id, plan.id, reason=FREE_PLAN_REASON)

    async def cleanup_expired(self, now: datetime | None = None) -> dict[str, int]:
        """Clear the ``active`` flag on expired assignments and tokens.

        Housekeeping only: slot evaluation already ignores expired rows.
        """
        now = now or utcnow()
        plans_result = await self.db.execute(
            update(PersonalPlanAssignment)
            .where(
                PersonalPlanAssignment.expiry_date < now,
                PersonalPlanAssignment.active == True,  # noqa: E712
            )
            .values(active=False)
            .execution_options(synchronize_session="fetch")
        )
        tokens_result = await self.db.execute(
            update(Token)
            .where(Token.expiry_date < now, Token.active == True)  # noqa: E712
            .values(active=False)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()

        summary = {
            "plans_deactivated": plans_result.rowcount or 0,
            "tokens_deactivated": tokens_result.rowcount or 0,
        }
        logger.info("expired_entitlements_cleaned", **summary)
        return summary
