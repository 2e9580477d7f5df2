"""Admin operations over trainers and their entitlements."""
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import NotFoundError
from src.domains.auth.schemas import UserResponse
from src.domains.auth.service import AuthService
from src.domains.plans.schemas import AssignmentResponse
from src.domains.plans.service import PlanService
from src.domains.slots.service import SlotService
from src.domains.tokens.schemas import TokenResponse
from src.domains.tokens.service import TokenService
from src.domains.users.models import User, UserRole

from .schemas import TrainerCreate, TrainerCreatedResponse, TrainerStatusResponse


class AdminService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.auth = AuthService(db)
        self.plans = PlanService(db)
        self.slots = SlotService(db)
        self.tokens = TokenService(db)

    async def get_trainer(self, trainer_id: uuid.UUID) -> User:
        user = await self.db.get(User, trainer_id)
        if user is None or user.role != UserRole.PERSONAL:
            raise NotFoundError("Personal não encontrado.")
        return user

    async def list_trainers(self) -> list[User]:
        result = await self.db.execute(
            select(User).where(User.role == UserRole.PERSONAL).order_by(User.name)
        )
        return list(result.scalars().all())

    async def create_trainer(self, data: TrainerCreate) -> TrainerCreatedResponse:
        """Register a trainer and start them on the free plan."""
        user = await self.auth.create_user(
            email=data.email,
            password=data.password,
            name=data.name,
            role=UserRole.PERSONAL,
            phone=data.phone,
        )
        assignment = await self.plans.assign_free_plan(user.id)
        return TrainerCreatedResponse(
            trainer=UserResponse.model_validate(user),
            assignment=AssignmentResponse.model_validate(assignment) if assignment else None,
        )

    async def get_trainer_status(self, trainer_id: uuid.UUID) -> TrainerStatusResponse:
        trainer = await self.get_trainer(trainer_id)
        current = await self.slots.get_plan_status(trainer_id)
        active_tokens, expired_tokens = await self.tokens.list_tokens(trainer_id)
        history = await self.plans.get_plan_history(trainer_id)

        return TrainerStatusResponse(
            trainer=UserResponse.model_validate(trainer),
            current=current,
            active_tokens=[TokenResponse.model_validate(t) for t in active_tokens],
            expired_tokens=[TokenResponse.model_validate(t) for t in expired_tokens],
            total_active_tokens=sum(t.quantity for t in active_tokens),
            active_students=current.active_students,
            total_limit=current.current_limit,
            plan_history=[AssignmentResponse.model_validate(a) for a in history],
        )
