"""Migration of legacy token rows into the token ledger.

Safe to run repeatedly: legacy rows are matched by ``Token.legacy_id`` and
plan tokens are only generated for assignments that have none.
"""
import uuid

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import StorageUnavailable, is_storage_failure
from src.core.models import utcnow
from src.domains.plans.models import PersonalPlanAssignment, Plan

from .models import AssignmentType, LegacyToken, Token, TokenAssignment, TokenKind
from .schemas import MigrationResult

logger = structlog.get_logger(__name__)

LEGACY_MIGRATION_REASON = "Migração automática de token avulso"


class TokenMigrationService:
    """Best-effort batch: one bad record never aborts the run."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _already_migrated(self, legacy_id: str) -> bool:
        result = await self.db.execute(select(Token.id).where(Token.legacy_id == legacy_id))
        return result.first() is not None

    async def _student_has_assignment(self, student_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(TokenAssignment.id).where(TokenAssignment.student_id == student_id)
        )
        return result.first() is not None

    async def _migrate_one(self, legacy) -> None:
        if legacy.granted_by_admin_id is None:
            raise ValueError("token sem administrador responsável")

        token = Token(
            trainer_id=legacy.personal_trainer_id,
            quantity=legacy.quantity,
            expiry_date=legacy.expiry_date,
            active=legacy.active,
            reason=legacy.reason or LEGACY_MIGRATION_REASON,
            granted_by_admin_id=legacy.granted_by_admin_id,
            kind=TokenKind.AVULSO,
            legacy_id=legacy.id,
        )
        self.db.add(token)
        await self.db.flush()

        student_id = legacy.assigned_student_id
        if student_id is not None and not await self._student_has_assignment(student_id):
            self.db.add(
                TokenAssignment(
                    token_id=token.id,
                    student_id=student_id,
                    trainer_id=legacy.personal_trainer_id,
                    type=AssignmentType.AVULSO,
                    valid_until=legacy.expiry_date,
                    assigned_at=legacy.date_assigned or utcnow(),
                )
            )
        await self.db.commit()

    async def migrate_legacy_tokens(self) -> tuple[int, list[str]]:
        """Copy every legacy token into the ledger as an avulso token."""
        # Plain rows: a rollback after a failed record must not expire them
        result = await self.db.execute(
            select(LegacyToken.__table__).order_by(LegacyToken.created_at)
        )
        legacy_tokens = result.all()
        logger.info("legacy_token_migration_started", found=len(legacy_tokens))

        migrated = 0
        errors: list[str] = []
        for legacy in legacy_tokens:
            legacy_id = legacy.id
            try:
                if await self._already_migrated(legacy_id):
                    continue
                await self._migrate_one(legacy)
                migrated += 1
            except (SQLAlchemyError, ValueError) as e:
                await self.db.rollback()
                if is_storage_failure(e):
                    raise StorageUnavailable() from e
                message = f"Failed to migrate token {legacy_id}: {e}"
                logger.warning("legacy_token_migration_failed", legacy_id=legacy_id, error=str(e))
                errors.append(message)

        logger.info("legacy_token_migration_finished", migrated=migrated, errors=len(errors))
        return migrated, errors

    async def _plan_tokens_exist(self, assignment_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(func.count(Token.id)).where(
                Token.kind == TokenKind.PLAN,
                Token.plan_assignment_id == assignment_id,
            )
        )
        return (result.scalar() or 0) > 0

    async def generate_plan_tokens(self) -> tuple[int, list[str]]:
        """Materialize one quantity-1 token per plan slot of current admin-granted plans."""
        now = utcnow()
        query = (
            select(
                PersonalPlanAssignment.id,
                PersonalPlanAssignment.trainer_id,
                PersonalPlanAssignment.expiry_date,
                PersonalPlanAssignment.assigned_by_admin_id,
                Plan.name.label("plan_name"),
                Plan.student_limit,
            )
            .join(Plan, Plan.id == PersonalPlanAssignment.plan_id)
            .where(
                PersonalPlanAssignment.active == True,  # noqa: E712
                PersonalPlanAssignment.expiry_date > now,
                PersonalPlanAssignment.assigned_by_admin_id.is_not(None),
                Plan.student_limit > 0,
            )
        )
        result = await self.db.execute(query)
        assignments = result.all()

        generated = 0
        errors: list[str] = []
        for assignment in assignments:
            assignment_id = assignment.id
            try:
                if await self._plan_tokens_exist(assignment_id):
                    continue

                for _ in range(assignment.student_limit):
                    self.db.add(
                        Token(
                            trainer_id=assignment.trainer_id,
                            quantity=1,
                            expiry_date=assignment.expiry_date,
                            active=True,
                            reason=f"Token de plano gerado automaticamente - {assignment.plan_name}",
                            granted_by_admin_id=assignment.assigned_by_admin_id,
                            kind=TokenKind.PLAN,
                            plan_assignment_id=assignment_id,
                        )
                    )
                await self.db.commit()
                generated += assignment.student_limit
            except SQLAlchemyError as e:
                await self.db.rollback()
                if is_storage_failure(e):
                    raise StorageUnavailable() from e
                logger.warning("plan_token_generation_failed", assignment_id=str(assignment_id), error=str(e))
                errors.append(f"Failed to generate tokens for plan {assignment_id}: {e}")

        logger.info("plan_token_generation_finished", generated=generated, errors=len(errors))
        return generated, errors

    async def run_complete_migration(self) -> MigrationResult:
        try:
            tokens_migrated, migration_errors = await self.migrate_legacy_tokens()
            plan_tokens_generated, plan_errors = await self.generate_plan_tokens()
        except SQLAlchemyError as e:
            if is_storage_failure(e):
                raise StorageUnavailable() from e
            raise

        result = MigrationResult(
            tokens_migrated=tokens_migrated,
            plan_tokens_generated=plan_tokens_generated,
            total_errors=migration_errors + plan_errors,
        )
        logger.info(
            "token_migration_completed",
            tokens_migrated=result.tokens_migrated,
            plan_tokens_generated=result.plan_tokens_generated,
            errors=len(result.total_errors),
        )
        return result
