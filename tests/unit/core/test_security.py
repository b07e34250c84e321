"""Unit tests for password hashing and JWT helpers."""

from datetime import timedelta

import pytest
from jose import JWTError, jwt

from src.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    get_token_subject,
    verify_password,
)


@pytest.mark.unit
class TestPasswords:
    """bcrypt hashing through passlib."""

    def test_hash_and_verify(self) -> None:
        hashed = get_password_hash("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong-pass", hashed)

    def test_hashes_are_salted(self) -> None:
        assert get_password_hash("same") != get_password_hash("same")


@pytest.mark.unit
class TestTokens:
    """Access and refresh tokens carry the user, tenant and token type."""

    def test_access_token_claims(self) -> None:
        token = create_access_token("user-1", "tenant-1", roles=["operator"])
        claims = decode_token(token)
        assert claims["sub"] == "user-1"
        assert claims["tenant_id"] == "tenant-1"
        assert claims["roles"] == ["operator"]
        assert claims["type"] == ACCESS_TOKEN_TYPE

    def test_extra_claims(self) -> None:
        claims = decode_token(create_access_token("user-1", "tenant-1", extra={"machine_id": "m-1"}))
        assert claims["machine_id"] == "m-1"

    def test_refresh_token_type(self) -> None:
        claims = decode_token(create_refresh_token("user-1", "tenant-1"))
        assert claims["type"] == REFRESH_TOKEN_TYPE
        assert "roles" not in claims

    def test_wrong_secret_is_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Tokens are bound to JWT_SECRET_KEY."""
        token = create_access_token("user-1", "tenant-1")
        monkeypatch.setenv("JWT_SECRET_KEY", "another-secret")
        with pytest.raises(JWTError):
            decode_token(token)
        assert get_token_subject(token) is None

    def test_expired_token_is_rejected(self) -> None:
        token = jwt.encode(
            {"sub": "user-1", "exp": 1, "type": ACCESS_TOKEN_TYPE}, "test-secret-key", algorithm="HS256"
        )
        with pytest.raises(JWTError):
            decode_token(token)

    def test_subject(self) -> None:
        assert get_token_subject(create_access_token("user-9", "tenant-1", expires_minutes=5)) == "user-9"
        assert get_token_subject("not-a-token") is None

    def test_expiry_follows_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")
        claims = decode_token(create_access_token("user-1", "tenant-1"))
        assert timedelta(seconds=claims["exp"] - claims["iat"]) == timedelta(minutes=60)
