"""Authentication and authorization dependencies for FastAPI routes."""
import uuid
from collections.abc import Callable, Coroutine
from typing import Annotated, Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.core.exceptions import AuthenticationError
from src.core.security import decode_token
from src.domains.users.models import User

from .permissions import Capability, ensure_capability

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Resolve the bearer token to an active user."""
    if credentials is None:
        raise AuthenticationError()

    token_data = decode_token(credentials.credentials)
    if token_data is None:
        raise AuthenticationError()

    try:
        user_id = uuid.UUID(token_data.user_id)
    except ValueError:
        raise AuthenticationError()

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("Usuário não encontrado ou inativo.")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_capability(capability: Capability) -> Callable[..., Coroutine[Any, Any, User]]:
    """Create a dependency that requires ``capability`` and yields the user.

    Usage:
        @router.post("/planos", dependencies=[Depends(require_capability(Capability.MANAGE_PLANS))])
    """

    async def _check(current_user: CurrentUser) -> User:
        ensure_capability(current_user, capability)
        return current_user

    return _check


CurrentTrainer = Annotated[User, Depends(require_capability(Capability.VIEW_OWN_ENTITLEMENTS))]
CurrentAdmin = Annotated[User, Depends(require_capability(Capability.MANAGE_TRAINERS))]
