"""Test configuration and fixtures for DyFit API."""

import os

# Settings are read at import time and DATABASE_URL is mandatory
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import uuid  # noqa: E402
from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from src.config.database import Base, database, get_db  # noqa: E402
from src.core.models import utcnow  # noqa: E402
from src.core.security import create_access_token  # noqa: E402
from src.core.storage import ProofStorage, get_proof_storage  # noqa: E402
from src.domains.plans.models import PersonalPlanAssignment, Plan, PlanKind  # noqa: E402
from src.domains.students.models import Student, StudentStatus  # noqa: E402
from src.domains.tokens.models import AssignmentType, Token, TokenAssignment, TokenKind  # noqa: E402
from src.domains.users.models import User, UserRole  # noqa: E402
from src.main import create_app  # noqa: E402

# Test database URL - use SQLite in-memory for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def test_engine():
    """Create a test database engine shared by every session of a test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    database.bind(engine)

    # Import all models to register them
    from src.domains import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await database.dispose()


@pytest.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with database.session() as session:
        yield session


@pytest.fixture
def storage(tmp_path) -> ProofStorage:
    """Proof storage rooted in a temporary directory."""
    return ProofStorage(root=tmp_path / "uploads")


@pytest.fixture(scope="function")
async def client(test_engine, db_session, storage) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""
    app = create_app()

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_proof_storage] = lambda: storage

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


# =============================================================================
# Users
# =============================================================================


async def _create_user(db: AsyncSession, role: UserRole, name: str, is_active: bool = True) -> User:
    user_id = uuid.uuid4()
    user = User(
        id=user_id,
        email=f"{role.value}-{user_id}@example.com",
        name=name,
        password_hash="$2b$12$test.hash.password",  # Not a real hash
        role=role,
        is_active=is_active,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def trainer(db_session: AsyncSession) -> User:
    """A personal trainer with no plan and no tokens."""
    return await _create_user(db_session, UserRole.PERSONAL, "Personal Test")


@pytest.fixture
async def other_trainer(db_session: AsyncSession) -> User:
    """Another trainer, for ownership checks."""
    return await _create_user(db_session, UserRole.PERSONAL, "Outro Personal")


@pytest.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.ADMIN, "Admin Test")


def _auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(str(user.id), role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def trainer_headers(trainer: User) -> dict[str, str]:
    return _auth_headers(trainer)


@pytest.fixture
def other_trainer_headers(other_trainer: User) -> dict[str, str]:
    return _auth_headers(other_trainer)


@pytest.fixture
def admin_headers(admin: User) -> dict[str, str]:
    return _auth_headers(admin)


# =============================================================================
# Entitlement factories
# =============================================================================


@pytest.fixture
def make_plan(db_session: AsyncSession) -> Callable[..., Awaitable[Plan]]:
    """Factory for catalog plans."""

    async def _make(
        name: str | None = None,
        student_limit: int = 5,
        duration_days: int = 30,
        price: str = "29.90",
        kind: PlanKind = PlanKind.PAID,
        active: bool = True,
    ) -> Plan:
        plan = Plan(
            name=name or f"Plano {uuid.uuid4().hex[:8]}",
            student_limit=student_limit,
            price=Decimal(price),
            duration_days=duration_days,
            kind=kind,
            active=active,
        )
        db_session.add(plan)
        await db_session.commit()
        await db_session.refresh(plan)
        return plan

    return _make


@pytest.fixture
def make_assignment(db_session: AsyncSession) -> Callable[..., Awaitable[PersonalPlanAssignment]]:
    """Factory for plan assignments; ``expires_in`` may be negative."""

    async def _make(
        trainer: User,
        plan: Plan,
        expires_in: timedelta = timedelta(days=30),
        active: bool = True,
        admin: User | None = None,
        now: datetime | None = None,
    ) -> PersonalPlanAssignment:
        now = now or utcnow()
        expiry = now + expires_in
        assignment = PersonalPlanAssignment(
            trainer_id=trainer.id,
            plan_id=plan.id,
            start_date=min(now, expiry) - timedelta(days=plan.duration_days),
            expiry_date=expiry,
            active=active,
            assigned_by_admin_id=admin.id if admin else None,
        )
        db_session.add(assignment)
        await db_session.commit()
        await db_session.refresh(assignment)
        return assignment

    return _make


@pytest.fixture
def make_token(db_session: AsyncSession, admin: User) -> Callable[..., Awaitable[Token]]:
    """Factory for avulso tokens granted by the ``admin`` fixture."""

    async def _make(
        trainer: User,
        quantity: int = 1,
        expires_in: timedelta = timedelta(days=30),
        active: bool = True,
        kind: TokenKind = TokenKind.AVULSO,
    ) -> Token:
        token = Token(
            trainer_id=trainer.id,
            quantity=quantity,
            expiry_date=utcnow() + expires_in,
            active=active,
            granted_by_admin_id=admin.id,
            kind=kind,
        )
        db_session.add(token)
        await db_session.commit()
        await db_session.refresh(token)
        return token

    return _make


@pytest.fixture
def make_student(db_session: AsyncSession) -> Callable[..., Awaitable[Student]]:
    """Factory for students; it does not touch the token ledger."""

    async def _make(trainer: User, status: StudentStatus = StudentStatus.ACTIVE) -> Student:
        student_id = uuid.uuid4()
        student = Student(
            id=student_id,
            trainer_id=trainer.id,
            name=f"Aluno {student_id.hex[:6]}",
            email=f"aluno-{student_id}@example.com",
            status=status,
        )
        db_session.add(student)
        await db_session.commit()
        await db_session.refresh(student)
        return student

    return _make


@pytest.fixture
def bind_slot(db_session: AsyncSession) -> Callable[..., Awaitable[TokenAssignment]]:
    """Record a consumed slot directly, bypassing capacity checks."""

    async def _bind(student: Student, source: Token | PersonalPlanAssignment) -> TokenAssignment:
        is_token = isinstance(source, Token)
        assignment = TokenAssignment(
            token_id=source.id,
            student_id=student.id,
            trainer_id=student.trainer_id,
            type=AssignmentType.AVULSO if is_token else AssignmentType.PLAN,
            valid_until=source.expiry_date,
        )
        db_session.add(assignment)
        await db_session.commit()
        await db_session.refresh(assignment)
        return assignment

    return _bind
