"""Unit tests for slot availability evaluation.

Capacity is the current plan's limit plus the unconsumed part of valid
avulso tokens; availability is capacity minus active students.
"""
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ValidationError
from src.domains.slots.service import SlotService
from src.domains.students.models import StudentStatus
from src.domains.tokens.models import TokenKind
from src.domains.users.models import User


class TestCanActivate:
    """Tests for SlotService.can_activate."""

    async def test_plan_only_capacity(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment, make_student
    ):
        """Limit 5 with 3 active students leaves 2 slots."""
        plan = await make_plan(student_limit=5)
        await make_assignment(trainer, plan)
        for _ in range(3):
            await make_student(trainer)

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.allowed is True
        assert verdict.available_slots == 2
        assert verdict.current_limit == 5
        assert verdict.active_student_count == 3
        assert verdict.message is None

    async def test_limit_reached_is_denied_with_message(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment, make_student
    ):
        plan = await make_plan(student_limit=2)
        await make_assignment(trainer, plan)
        await make_student(trainer)
        await make_student(trainer)

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.allowed is False
        assert verdict.available_slots == 0
        assert verdict.message
        assert verdict.details.plan_limit == 2
        assert verdict.details.requested == 1

    async def test_consumed_tokens_do_not_add_capacity(
        self,
        db_session: AsyncSession,
        trainer: User,
        make_plan,
        make_assignment,
        make_token,
        make_student,
        bind_slot,
    ):
        """Limit 5, 3 active, token of 2 already taken by two of them: 2 available."""
        plan = await make_plan(student_limit=5)
        assignment = await make_assignment(trainer, plan)
        token = await make_token(trainer, quantity=2)
        first = await make_student(trainer)
        second = await make_student(trainer)
        third = await make_student(trainer)
        await bind_slot(first, token)
        await bind_slot(second, token)
        await bind_slot(third, assignment)

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.details.tokens_total == 2
        assert verdict.details.tokens_consumed == 2
        assert verdict.details.tokens_available == 0
        assert verdict.current_limit == 5
        assert verdict.available_slots == 2
        assert verdict.allowed is True

    async def test_unconsumed_tokens_add_capacity(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment, make_token, make_student
    ):
        plan = await make_plan(student_limit=1)
        await make_assignment(trainer, plan)
        await make_token(trainer, quantity=2)
        await make_student(trainer)

        verdict = await SlotService(db_session).can_activate(trainer.id, 2)

        assert verdict.current_limit == 3
        assert verdict.available_slots == 2
        assert verdict.allowed is True

    async def test_requesting_more_than_available(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment
    ):
        plan = await make_plan(student_limit=3)
        await make_assignment(trainer, plan)

        verdict = await SlotService(db_session).can_activate(trainer.id, 4)

        assert verdict.allowed is False
        assert verdict.available_slots == 3

    async def test_expired_plan_contributes_nothing(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment
    ):
        """An assignment still flagged active but past expiry grants no slots."""
        plan = await make_plan(student_limit=10)
        await make_assignment(trainer, plan, expires_in=timedelta(days=-1), active=True)

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.details.plan_active is False
        assert verdict.current_limit == 0
        assert verdict.allowed is False

    async def test_inactive_plan_contributes_nothing(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment
    ):
        plan = await make_plan(student_limit=10)
        await make_assignment(trainer, plan, active=False)

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.current_limit == 0

    async def test_expired_token_contributes_nothing(
        self, db_session: AsyncSession, trainer: User, make_token
    ):
        await make_token(trainer, quantity=3, expires_in=timedelta(hours=-1))

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.details.tokens_total == 0
        assert verdict.allowed is False

    async def test_plan_kind_tokens_are_not_counted(
        self, db_session: AsyncSession, trainer: User, make_token
    ):
        await make_token(trainer, quantity=4, kind=TokenKind.PLAN)

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.details.tokens_total == 0

    async def test_available_never_negative(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment, make_student
    ):
        """Students left over from a bigger plan do not push availability below zero."""
        plan = await make_plan(student_limit=1)
        await make_assignment(trainer, plan)
        for _ in range(4):
            await make_student(trainer)

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.available_slots == 0
        assert verdict.allowed is False

    async def test_inactive_students_do_not_count(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment, make_student
    ):
        plan = await make_plan(student_limit=1)
        await make_assignment(trainer, plan)
        await make_student(trainer, status=StudentStatus.INACTIVE)

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.allowed is True

    async def test_latest_expiry_wins_among_current_assignments(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment
    ):
        small = await make_plan(student_limit=1)
        big = await make_plan(student_limit=20)
        await make_assignment(trainer, small, expires_in=timedelta(days=5))
        await make_assignment(trainer, big, expires_in=timedelta(days=40))

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.current_limit == 20

    @pytest.mark.parametrize("quantity", [0, -3])
    async def test_quantity_below_one_is_rejected(
        self, db_session: AsyncSession, trainer: User, quantity: int
    ):
        with pytest.raises(ValidationError):
            await SlotService(db_session).can_activate(trainer.id, quantity)

    async def test_other_trainers_entitlements_are_ignored(
        self,
        db_session: AsyncSession,
        trainer: User,
        other_trainer: User,
        make_plan,
        make_assignment,
        make_token,
    ):
        plan = await make_plan(student_limit=10)
        await make_assignment(other_trainer, plan)
        await make_token(other_trainer, quantity=5)

        verdict = await SlotService(db_session).can_activate(trainer.id, 1)

        assert verdict.current_limit == 0


class TestPlanStatus:
    """Tests for the dashboard snapshot."""

    async def test_snapshot_of_current_plan(
        self,
        db_session: AsyncSession,
        trainer: User,
        make_plan,
        make_assignment,
        make_token,
        make_student,
    ):
        plan = await make_plan(name="Pro Teste", student_limit=4)
        await make_assignment(trainer, plan)
        await make_token(trainer, quantity=1)
        await make_student(trainer)

        status = await SlotService(db_session).get_plan_status(trainer.id)

        assert status.plan.name == "Pro Teste"
        assert status.is_expired is False
        assert status.current_limit == 5
        assert status.active_students == 1
        assert status.tokens_available == 1
        assert status.available_slots == 4
        assert status.usage_percentage == 20
        assert status.can_activate_more is True
        assert len(status.tokens) == 1

    async def test_expired_plan_is_shown_as_expired(
        self, db_session: AsyncSession, trainer: User, make_plan, make_assignment
    ):
        plan = await make_plan(name="Vencido", student_limit=4)
        await make_assignment(trainer, plan, expires_in=timedelta(days=-2))

        status = await SlotService(db_session).get_plan_status(trainer.id)

        assert status.is_expired is True
        assert status.plan.name == "Vencido"
        assert status.current_limit == 0
        assert status.can_activate_more is False

    async def test_no_plan_at_all(self, db_session: AsyncSession, trainer: User):
        status = await SlotService(db_session).get_plan_status(trainer.id)

        assert status.plan is None
        assert status.assignment is None
        assert status.is_expired is False
        assert status.usage_percentage == 0
