"""Unit tests for the legacy token migration."""
import uuid
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.models import utcnow
from src.domains.students.models import Student
from src.domains.tokens.migration import TokenMigrationService
from src.domains.tokens.models import AssignmentType, LegacyToken, Token, TokenAssignment, TokenKind
from src.domains.users.models import User


async def _legacy_token(
    db: AsyncSession,
    trainer: User,
    admin: User | None,
    quantity: int = 2,
    student: Student | None = None,
) -> LegacyToken:
    legacy = LegacyToken(
        id=uuid.uuid4().hex[:24],
        personal_trainer_id=trainer.id,
        quantity=quantity,
        expiry_date=utcnow() + timedelta(days=15),
        active=True,
        assigned_student_id=student.id if student else None,
        date_assigned=utcnow() if student else None,
        granted_by_admin_id=admin.id if admin else None,
        reason="Token antigo",
    )
    db.add(legacy)
    await db.commit()
    return legacy


async def _count(db: AsyncSession, query) -> int:
    result = await db.execute(query)
    return result.scalar() or 0


class TestMigrateLegacyTokens:
    async def test_legacy_tokens_become_avulso_tokens(
        self, db_session: AsyncSession, trainer: User, admin: User
    ):
        legacy = await _legacy_token(db_session, trainer, admin, quantity=3)

        migrated, errors = await TokenMigrationService(db_session).migrate_legacy_tokens()

        assert migrated == 1
        assert errors == []
        result = await db_session.execute(select(Token).where(Token.legacy_id == legacy.id))
        token = result.scalar_one()
        assert token.kind == TokenKind.AVULSO
        assert token.quantity == 3
        assert token.trainer_id == trainer.id

    async def test_assigned_student_gets_a_slot(
        self, db_session: AsyncSession, trainer: User, admin: User, make_student
    ):
        student = await make_student(trainer)
        await _legacy_token(db_session, trainer, admin, student=student)

        await TokenMigrationService(db_session).migrate_legacy_tokens()

        result = await db_session.execute(
            select(TokenAssignment).where(TokenAssignment.student_id == student.id)
        )
        slot = result.scalar_one()
        assert slot.type == AssignmentType.AVULSO

    async def test_missing_admin_is_collected_as_error(
        self, db_session: AsyncSession, trainer: User, admin: User
    ):
        good_id = (await _legacy_token(db_session, trainer, admin)).id
        bad_id = (await _legacy_token(db_session, trainer, None)).id

        migrated, errors = await TokenMigrationService(db_session).migrate_legacy_tokens()

        assert migrated == 1
        assert len(errors) == 1
        assert bad_id in errors[0]
        assert await _count(db_session, select(func.count(Token.id)).where(Token.legacy_id == good_id)) == 1
        assert await _count(db_session, select(func.count(Token.id)).where(Token.legacy_id == bad_id)) == 0


class TestGeneratePlanTokens:
    async def test_one_token_per_plan_slot(
        self, db_session: AsyncSession, trainer: User, admin: User, make_plan, make_assignment
    ):
        plan = await make_plan(student_limit=3)
        assignment = await make_assignment(trainer, plan, admin=admin)

        generated, errors = await TokenMigrationService(db_session).generate_plan_tokens()

        assert generated == 3
        assert errors == []
        result = await db_session.execute(select(Token).where(Token.plan_assignment_id == assignment.id))
        tokens = result.scalars().all()
        assert len(tokens) == 3
        assert all(t.kind == TokenKind.PLAN and t.quantity == 1 for t in tokens)

    async def test_skips_automatic_and_expired_assignments(
        self, db_session: AsyncSession, trainer: User, other_trainer: User, admin: User, make_plan, make_assignment
    ):
        plan = await make_plan(student_limit=2)
        await make_assignment(trainer, plan)  # free-tier style, no admin
        await make_assignment(other_trainer, plan, admin=admin, expires_in=timedelta(days=-1))

        generated, _ = await TokenMigrationService(db_session).generate_plan_tokens()

        assert generated == 0


class TestCompleteMigration:
    async def test_second_run_is_a_no_op(
        self, db_session: AsyncSession, trainer: User, admin: User, make_plan, make_assignment
    ):
        await _legacy_token(db_session, trainer, admin)
        plan = await make_plan(student_limit=2)
        await make_assignment(trainer, plan, admin=admin)
        service = TokenMigrationService(db_session)

        first = await service.run_complete_migration()
        second = await service.run_complete_migration()

        assert first.tokens_migrated == 1
        assert first.plan_tokens_generated == 2
        assert second.tokens_migrated == 0
        assert second.plan_tokens_generated == 0
        assert second.total_errors == []
        assert await _count(db_session, select(func.count(Token.id))) == 3

    async def test_plan_tokens_do_not_change_capacity(
        self, db_session: AsyncSession, trainer: User, admin: User, make_plan, make_assignment
    ):
        """Materialized plan tokens are bookkeeping; the plan limit is not doubled."""
        from src.domains.slots.service import SlotService

        plan = await make_plan(student_limit=2)
        await make_assignment(trainer, plan, admin=admin)
        await TokenMigrationService(db_session).run_complete_migration()

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.current_limit == 2
