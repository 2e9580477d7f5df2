"""Unit tests for the token ledger: grants, consumption and release."""
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import DuplicateAssignment, NotFoundError, SlotUnavailable
from src.core.models import as_utc, utcnow
from src.domains.students.models import StudentStatus
from src.domains.tokens.models import AssignmentType, TokenAssignment, TokenKind
from src.domains.tokens.service import TokenService, to_legacy_view
from src.domains.users.models import User


class TestAddTokens:
    async def test_grant_uses_default_validity(self, db_session: AsyncSession, trainer: User, admin: User):
        token = await TokenService(db_session).add_tokens(trainer.id, 3, admin_id=admin.id, reason="Bônus")

        assert token.quantity == 3
        assert token.kind == TokenKind.AVULSO
        assert token.granted_by_admin_id == admin.id
        days_left = (as_utc(token.expiry_date) - utcnow()).days
        assert 29 <= days_left <= 30

    async def test_grant_with_custom_days(self, db_session: AsyncSession, trainer: User, admin: User):
        now = utcnow()
        token = await TokenService(db_session).add_tokens(trainer.id, 1, admin_id=admin.id, days=7, now=now)

        assert as_utc(token.expiry_date) == now + timedelta(days=7)

    async def test_list_tokens_splits_valid_and_recently_expired(
        self, db_session: AsyncSession, trainer: User, make_token
    ):
        valid = await make_token(trainer, quantity=2)
        expired = await make_token(trainer, quantity=1, expires_in=timedelta(days=-3))
        await make_token(trainer, quantity=1, expires_in=timedelta(days=-90))

        active, recent = await TokenService(db_session).list_tokens(trainer.id)

        assert [t.id for t in active] == [valid.id]
        assert [t.id for t in recent] == [expired.id]


class TestConsumeSlot:
    async def test_plan_slot_is_used_first(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment, make_token, make_student
    ):
        plan = await make_plan(student_limit=1)
        assignment = await make_assignment(trainer, plan)
        await make_token(trainer, quantity=1)
        student = await make_student(trainer, status=StudentStatus.INACTIVE)

        slot = await TokenService(db_session).consume_slot(trainer.id, student.id)

        assert slot.type == AssignmentType.PLAN
        assert slot.token_id == assignment.id

    async def test_token_is_used_when_plan_is_full(
        self,
        db_session: AsyncSession,
        trainer: User,
        make_plan,
        make_assignment,
        make_token,
        make_student,
        bind_slot,
    ):
        plan = await make_plan(student_limit=1)
        assignment = await make_assignment(trainer, plan)
        token = await make_token(trainer, quantity=1)
        first = await make_student(trainer)
        await bind_slot(first, assignment)
        second = await make_student(trainer, status=StudentStatus.INACTIVE)

        slot = await TokenService(db_session).consume_slot(trainer.id, second.id)

        assert slot.type == AssignmentType.AVULSO
        assert slot.token_id == token.id

    async def test_preferred_avulso_source(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment, make_token, make_student
    ):
        plan = await make_plan(student_limit=5)
        await make_assignment(trainer, plan)
        token = await make_token(trainer, quantity=1)
        student = await make_student(trainer, status=StudentStatus.INACTIVE)

        slot = await TokenService(db_session).consume_slot(
            trainer.id, student.id, preferred_source=AssignmentType.AVULSO
        )

        assert slot.type == AssignmentType.AVULSO
        assert slot.token_id == token.id

    async def test_earliest_expiring_token_is_consumed_first(
        self, db_session: AsyncSession, trainer: User, make_token, make_student
    ):
        await make_token(trainer, quantity=1, expires_in=timedelta(days=20))
        soon = await make_token(trainer, quantity=1, expires_in=timedelta(days=2))
        student = await make_student(trainer, status=StudentStatus.INACTIVE)

        slot = await TokenService(db_session).consume_slot(trainer.id, student.id)

        assert slot.token_id == soon.id

    async def test_second_consumption_for_same_student_is_duplicate(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment, make_student
    ):
        plan = await make_plan(student_limit=5)
        await make_assignment(trainer, plan)
        student = await make_student(trainer, status=StudentStatus.INACTIVE)
        service = TokenService(db_session)
        await service.consume_slot(trainer.id, student.id)

        with pytest.raises(DuplicateAssignment):
            await service.consume_slot(trainer.id, student.id)

        result = await db_session.execute(
            select(func.count(TokenAssignment.id)).where(TokenAssignment.student_id == student.id)
        )
        assert result.scalar() == 1

    async def test_unique_constraint_catches_duplicate_missed_by_lookup(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment, make_student
    ):
        plan = await make_plan(student_limit=5)
        await make_assignment(trainer, plan)
        student = await make_student(trainer, status=StudentStatus.INACTIVE)
        student_id = student.id
        service = TokenService(db_session)
        await service.consume_slot(trainer.id, student_id)

        # Simulate a concurrent insert that the lookup could not see yet
        service.get_assignment_for_student = AsyncMock(return_value=None)
        with pytest.raises(DuplicateAssignment):
            await service.consume_slot(trainer.id, student_id)

        result = await db_session.execute(
            select(func.count(TokenAssignment.id)).where(TokenAssignment.student_id == student_id)
        )
        assert result.scalar() == 1
        assert await TokenService(db_session).release_slot(student_id) is True

    async def test_no_capacity_raises_slot_unavailable(
        self, db_session: AsyncSession, trainer: User, make_student
    ):
        student = await make_student(trainer, status=StudentStatus.INACTIVE)

        with pytest.raises(SlotUnavailable) as exc_info:
            await TokenService(db_session).consume_slot(trainer.id, student.id)

        assert exc_info.value.details["total_limit"] == 0


class TestReleaseSlot:
    async def test_release_frees_the_slot(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment, make_student
    ):
        plan = await make_plan(student_limit=1)
        await make_assignment(trainer, plan)
        student = await make_student(trainer, status=StudentStatus.INACTIVE)
        service = TokenService(db_session)
        await service.consume_slot(trainer.id, student.id)

        assert await service.release_slot(student.id) is True
        assert await service.get_assignment_for_student(student.id) is None

    async def test_release_is_idempotent(self, db_session: AsyncSession):
        service = TokenService(db_session)

        assert await service.release_slot(uuid.uuid4()) is False
        assert await service.release_slot(uuid.uuid4()) is False

    async def test_released_token_slot_can_be_reused(
        self, db_session: AsyncSession, trainer: User, make_token, make_student
    ):
        token = await make_token(trainer, quantity=1)
        first = await make_student(trainer, status=StudentStatus.INACTIVE)
        second = await make_student(trainer, status=StudentStatus.INACTIVE)
        service = TokenService(db_session)

        await service.consume_slot(trainer.id, first.id)
        await service.release_slot(first.id)
        slot = await service.consume_slot(trainer.id, second.id)

        assert slot.token_id == token.id


class TestStudentAssignment:
    async def test_owner_can_read_assignment(
        self, db_session: AsyncSession, trainer: User, make_token, make_student, bind_slot
    ):
        token = await make_token(trainer)
        student = await make_student(trainer)
        await bind_slot(student, token)

        assignment = await TokenService(db_session).get_student_assignment(trainer.id, student.id)

        assert assignment.token_id == token.id

    async def test_other_trainer_gets_not_found(
        self, db_session: AsyncSession, trainer: User, other_trainer: User, make_token, make_student, bind_slot
    ):
        token = await make_token(trainer)
        student = await make_student(trainer)
        await bind_slot(student, token)

        with pytest.raises(NotFoundError):
            await TokenService(db_session).get_student_assignment(other_trainer.id, student.id)

    async def test_student_without_slot_is_not_found(
        self, db_session: AsyncSession, trainer: User, make_student
    ):
        student = await make_student(trainer, status=StudentStatus.INACTIVE)

        with pytest.raises(NotFoundError):
            await TokenService(db_session).get_student_assignment(trainer.id, student.id)

    async def test_legacy_view_names(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment, make_student, bind_slot
    ):
        plan = await make_plan()
        plan_assignment = await make_assignment(trainer, plan)
        student = await make_student(trainer)
        slot = await bind_slot(student, plan_assignment)

        view = to_legacy_view(slot)

        assert view["type"] == "plano"
        assert view["studentId"] == str(student.id)
        assert view["personalTrainerId"] == str(trainer.id)
        assert view["tokenId"] == str(plan_assignment.id)


class TestTokenStatus:
    async def test_status_summary(
        self,
        db_session: AsyncSession,
        trainer: User,
        make_plan,
        make_assignment,
        make_token,
        make_student,
        bind_slot,
    ):
        plan = await make_plan(student_limit=2)
        assignment = await make_assignment(trainer, plan)
        token = await make_token(trainer, quantity=3)
        on_plan = await make_student(trainer)
        on_token = await make_student(trainer)
        await bind_slot(on_plan, assignment)
        await bind_slot(on_token, token)

        status = await TokenService(db_session).get_token_status(trainer.id)

        assert status.plan_limit == 2
        assert status.plan_consumed == 1
        assert status.tokens_total == 3
        assert status.tokens_consumed == 1
        assert status.tokens_available == 2
        assert status.total_limit == 4
        assert status.active_students == 2
        assert status.available_slots == 2
        assert {c.student_id for c in status.consumption} == {on_plan.id, on_token.id}
