"""Integration tests for token ledger endpoints (``/api/tokens``)."""
import uuid

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.models import utcnow
from src.domains.tokens.models import LegacyToken
from src.domains.users.models import User


class TestStudentToken:
    async def test_owner_gets_assignment_with_legacy_view(
        self, client: AsyncClient, trainer: User, trainer_headers: dict, make_token, make_student, bind_slot
    ):
        token = await make_token(trainer)
        student = await make_student(trainer)
        await bind_slot(student, token)

        response = await client.get(f"/api/tokens/student/{student.id}", headers=trainer_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["token_id"] == str(token.id)
        assert data["type"] == "avulso"
        assert data["legacy"]["studentId"] == str(student.id)

    async def test_not_owned_is_404(
        self,
        client: AsyncClient,
        trainer: User,
        other_trainer_headers: dict,
        make_token,
        make_student,
        bind_slot,
    ):
        token = await make_token(trainer)
        student = await make_student(trainer)
        await bind_slot(student, token)

        response = await client.get(f"/api/tokens/student/{student.id}", headers=other_trainer_headers)

        assert response.status_code == 404

    async def test_no_assignment_is_404(self, client: AsyncClient, trainer_headers: dict):
        response = await client.get(f"/api/tokens/student/{uuid.uuid4()}", headers=trainer_headers)

        assert response.status_code == 404

    async def test_malformed_id_is_400(self, client: AsyncClient, trainer_headers: dict):
        response = await client.get("/api/tokens/student/not-a-uuid", headers=trainer_headers)

        assert response.status_code == 400
        assert response.json()["codigo"] == "VALIDATION_ERROR"


class TestTokenStatus:
    async def test_status(
        self, client: AsyncClient, trainer: User, trainer_headers: dict, make_plan, make_assignment
    ):
        plan = await make_plan(student_limit=3)
        await make_assignment(trainer, plan)

        response = await client.get("/api/tokens/status", headers=trainer_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["plan_limit"] == 3
        assert data["available_slots"] == 3
        assert data["consumption"] == []


class TestMigrationEndpoint:
    async def test_admin_runs_migration(
        self, client: AsyncClient, db_session: AsyncSession, trainer: User, admin: User, admin_headers: dict
    ):
        db_session.add(
            LegacyToken(
                id="legacy-001",
                personal_trainer_id=trainer.id,
                quantity=2,
                expiry_date=utcnow(),
                active=True,
                granted_by_admin_id=admin.id,
            )
        )
        await db_session.commit()

        first = await client.post("/api/tokens/migrate", headers=admin_headers)
        second = await client.post("/api/tokens/migrate", headers=admin_headers)

        assert first.status_code == 200
        assert first.json()["tokens_migrated"] == 1
        assert second.json() == {"tokens_migrated": 0, "plan_tokens_generated": 0, "total_errors": []}

    async def test_trainer_cannot_run_migration(self, client: AsyncClient, trainer_headers: dict):
        response = await client.post("/api/tokens/migrate", headers=trainer_headers)

        assert response.status_code == 403
