"""JWT token handling and password hashing."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from src.config.settings import settings


@dataclass
class TokenData:
    """Claims extracted from a decoded token."""

    user_id: str
    token_type: str
    role: str | None = None


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _create_token(
    user_id: str,
    token_type: str,
    secret: str,
    expires_delta: timedelta,
    role: str | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, secret, algorithm=settings.JWT_ALGORITHM)


def create_access_token(
    user_id: str,
    expires_delta: timedelta | None = None,
    role: str | None = None,
) -> str:
    """Create a short-lived access token."""
    return _create_token(
        user_id,
        "access",
        settings.JWT_SECRET_KEY,
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        role=role,
    )


def create_refresh_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create a long-lived refresh token."""
    return _create_token(
        user_id,
        "refresh",
        settings.JWT_REFRESH_SECRET_KEY,
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def create_token_pair(user_id: str, role: str | None = None) -> tuple[str, str]:
    """Create (access_token, refresh_token)."""
    return create_access_token(user_id, role=role), create_refresh_token(user_id)


def decode_token(token: str, is_refresh: bool = False) -> TokenData | None:
    """Decode and validate a token. Returns None when invalid or expired."""
    secret = settings.JWT_REFRESH_SECRET_KEY if is_refresh else settings.JWT_SECRET_KEY
    expected_type = "refresh" if is_refresh else "access"
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None

    if payload.get("type") != expected_type or not payload.get("sub"):
        return None

    return TokenData(
        user_id=payload["sub"],
        token_type=payload["type"],
        role=payload.get("role"),
    )
