"""Integration tests for student endpoints (``/api/students``)."""
import uuid

from httpx import AsyncClient

from src.domains.students.models import StudentStatus
from src.domains.users.models import User


def _payload(**overrides) -> dict:
    data = {"name": "Aluno API", "email": f"aluno-{uuid.uuid4().hex[:8]}@example.com"}
    data.update(overrides)
    return data


class TestCreateStudent:
    async def test_create_active_student(
        self, client: AsyncClient, trainer: User, trainer_headers: dict, make_plan, make_assignment
    ):
        plan = await make_plan(student_limit=1)
        await make_assignment(trainer, plan)

        response = await client.post("/api/students", json=_payload(), headers=trainer_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "active"
        assert data["trainer_id"] == str(trainer.id)

        token_response = await client.get(f"/api/tokens/student/{data['id']}", headers=trainer_headers)
        assert token_response.json()["type"] == "plan"

    async def test_over_capacity_is_422(self, client: AsyncClient, trainer_headers: dict):
        response = await client.post("/api/students", json=_payload(), headers=trainer_headers)

        assert response.status_code == 422
        body = response.json()
        assert body["codigo"] == "SLOT_UNAVAILABLE"
        assert body["detalhes"]["total_limit"] == 0

    async def test_invalid_email_is_400(self, client: AsyncClient, trainer_headers: dict):
        response = await client.post(
            "/api/students", json=_payload(email="sem-arroba"), headers=trainer_headers
        )

        assert response.status_code == 400


class TestStudentStatus:
    async def test_deactivate_then_list(
        self, client: AsyncClient, trainer: User, trainer_headers: dict, make_plan, make_assignment
    ):
        plan = await make_plan(student_limit=1)
        await make_assignment(trainer, plan)
        created = await client.post("/api/students", json=_payload(), headers=trainer_headers)
        student_id = created.json()["id"]

        response = await client.patch(
            f"/api/students/{student_id}/status", json={"status": "inactive"}, headers=trainer_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "inactive"
        listing = await client.get("/api/students?status=inactive", headers=trainer_headers)
        assert [s["id"] for s in listing.json()] == [student_id]
        token_response = await client.get(f"/api/tokens/student/{student_id}", headers=trainer_headers)
        assert token_response.status_code == 404

    async def test_activation_beyond_capacity(
        self, client: AsyncClient, trainer: User, trainer_headers: dict, make_student
    ):
        student = await make_student(trainer, status=StudentStatus.INACTIVE)

        response = await client.patch(
            f"/api/students/{student.id}/status", json={"status": "active"}, headers=trainer_headers
        )

        assert response.status_code == 422

    async def test_delete(
        self, client: AsyncClient, trainer: User, trainer_headers: dict, make_plan, make_assignment
    ):
        plan = await make_plan(student_limit=1)
        await make_assignment(trainer, plan)
        created = await client.post("/api/students", json=_payload(), headers=trainer_headers)

        response = await client.delete(f"/api/students/{created.json()['id']}", headers=trainer_headers)

        assert response.status_code == 204
        verdict = await client.get("/api/personal/can-activate/1", headers=trainer_headers)
        assert verdict.json()["allowed"] is True

    async def test_other_trainers_student_is_404(
        self, client: AsyncClient, trainer: User, other_trainer_headers: dict, make_student
    ):
        student = await make_student(trainer)

        response = await client.get(f"/api/students/{student.id}", headers=other_trainer_headers)

        assert response.status_code == 404
