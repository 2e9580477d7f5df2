"""Authentication service with database operations."""
import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ConflictError
from src.core.security import (
    create_token_pair,
    decode_token,
    hash_password,
    verify_password,
)
from src.domains.users.models import User, UserRole

logger = structlog.get_logger(__name__)


class AuthService:
    """Service for handling authentication operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: uuid.UUID) -> User | None:
        return await self.db.get(User, user_id)

    async def create_user(
        self,
        email: str,
        password: str,
        name: str,
        role: UserRole = UserRole.PERSONAL,
        phone: str | None = None,
    ) -> User:
        """Create a new platform user.

        Raises ConflictError when the email is already registered.
        """
        if await self.get_user_by_email(email):
            raise ConflictError("Este email já está cadastrado.")

        user = User(
            email=email.lower(),
            password_hash=hash_password(password),
            name=name,
            phone=phone,
            role=role,
            is_active=True,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info("user_created", user_id=str(user.id), role=role.value)
        return user

    async def authenticate_user(self, email: str, password: str) -> User | None:
        """Return the user when the credentials match, None otherwise."""
        user = await self.get_user_by_email(email)
        if not user:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    def generate_tokens(self, user: User) -> tuple[str, str]:
        """Access and refresh token pair for a user."""
        return create_token_pair(str(user.id), role=user.role.value)

    async def refresh_tokens(self, refresh_token: str) -> tuple[str, str] | None:
        token_data = decode_token(refresh_token, is_refresh=True)
        if not token_data:
            return None

        try:
            user_id = uuid.UUID(token_data.user_id)
        except ValueError:
            return None

        user = await self.get_user_by_id(user_id)
        if not user or not user.is_active:
            return None
        return self.generate_tokens(user)
