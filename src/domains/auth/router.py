"""Authentication router."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.core.exceptions import AuthenticationError, Forbidden
from src.domains.auth.dependencies import CurrentUser
from src.domains.auth.schemas import (
    AuthResponse,
    LoginRequest,
    RefreshRequest,
    TokenResponse,
    UserResponse,
)
from src.domains.auth.service import AuthService

router = APIRouter()


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AuthResponse:
    """Authenticate user and return tokens."""
    auth_service = AuthService(db)

    user = await auth_service.authenticate_user(
        email=request.email,
        password=request.password,
    )
    if not user:
        raise AuthenticationError("Email ou senha inválidos.")

    if not user.is_active:
        raise Forbidden("Sua conta está desativada.")

    access_token, refresh_token = auth_service.generate_tokens(user)

    return AuthResponse(
        user=UserResponse.model_validate(user),
        tokens=TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
        ),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    request: RefreshRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TokenResponse:
    """Exchange a refresh token for a new token pair."""
    auth_service = AuthService(db)

    tokens = await auth_service.refresh_tokens(request.refresh_token)
    if not tokens:
        raise AuthenticationError("Refresh token inválido ou expirado.")

    access_token, new_refresh_token = tokens
    return TokenResponse(access_token=access_token, refresh_token=new_refresh_token)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: CurrentUser) -> UserResponse:
    """Get current authenticated user information."""
    return UserResponse.model_validate(current_user)
