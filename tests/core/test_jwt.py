"""Tests for JWT security module."""
import uuid
from datetime import timedelta

from src.core.security.jwt import (
    TokenData,
    create_access_token,
    create_refresh_token,
    create_token_pair,
    decode_token,
    hash_password,
    verify_password,
)


class TestHashPassword:
    """Tests for hash_password function."""

    def test_hash_password_returns_string(self):
        """Should return a hashed string."""
        password = "my_secure_password"
        hashed = hash_password(password)

        assert isinstance(hashed, str)
        assert hashed != password

    def test_hash_password_different_for_same_input(self):
        """Bcrypt uses a random salt."""
        password = "my_secure_password"

        assert hash_password(password) != hash_password(password)

    def test_hash_password_starts_with_bcrypt_prefix(self):
        assert hash_password("test_password").startswith("$2")


class TestVerifyPassword:
    """Tests for verify_password function."""

    def test_verify_correct_password(self):
        hashed = hash_password("correct_password")

        assert verify_password("correct_password", hashed) is True

    def test_verify_incorrect_password(self):
        hashed = hash_password("correct_password")

        assert verify_password("wrong_password", hashed) is False

    def test_verify_password_case_sensitive(self):
        hashed = hash_password("CaseSensitive")

        assert verify_password("CaseSensitive", hashed) is True
        assert verify_password("casesensitive", hashed) is False

    def test_verify_against_malformed_hash(self):
        """A corrupt stored hash never verifies."""
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestAccessToken:
    """Tests for access token creation and decoding."""

    def test_access_token_round_trip(self):
        user_id = str(uuid.uuid4())
        token = create_access_token(user_id, role="personal")

        data = decode_token(token)

        assert isinstance(data, TokenData)
        assert data.user_id == user_id
        assert data.token_type == "access"
        assert data.role == "personal"

    def test_expired_access_token_is_rejected(self):
        token = create_access_token(str(uuid.uuid4()), expires_delta=timedelta(seconds=-1))

        assert decode_token(token) is None

    def test_garbage_token_is_rejected(self):
        assert decode_token("not.a.jwt") is None

    def test_access_token_is_not_a_refresh_token(self):
        token = create_access_token(str(uuid.uuid4()))

        assert decode_token(token, is_refresh=True) is None


class TestRefreshToken:
    """Tests for refresh tokens and token pairs."""

    def test_refresh_token_decodes_only_as_refresh(self):
        user_id = str(uuid.uuid4())
        token = create_refresh_token(user_id)

        assert decode_token(token) is None
        data = decode_token(token, is_refresh=True)
        assert data is not None
        assert data.user_id == user_id
        assert data.token_type == "refresh"

    def test_token_pair(self):
        user_id = str(uuid.uuid4())
        access, refresh = create_token_pair(user_id, role="admin")

        assert decode_token(access).role == "admin"
        assert decode_token(refresh, is_refresh=True).user_id == user_id
