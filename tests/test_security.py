"""Tests for password hashing and the JWT codec."""

from datetime import timedelta
from uuid import uuid4

import pytest
from argon2 import PasswordHasher
from jose import jwt

from finwise.config import settings
from finwise.core.exceptions import ExpiredTokenError, InvalidTokenError
from finwise.core.security import JwtService, PasswordService


@pytest.fixture(scope="module")
def passwords() -> PasswordService:
    return PasswordService()


@pytest.fixture
def jwt_service() -> JwtService:
    return JwtService(settings)


class TestPasswordService:
    """Argon2id hashing policy."""

    def test_hash_is_argon2id_and_salted(self, passwords: PasswordService):
        first = passwords.hash("correct horse")
        second = passwords.hash("correct horse")

        assert first.startswith("$argon2id$")
        assert first != second
        assert "m=65536,t=3,p=4" in first

    def test_verify(self, passwords: PasswordService):
        hashed = passwords.hash("correct horse")

        assert passwords.verify(hashed, "correct horse") is True
        assert passwords.verify(hashed, "wrong horse") is False

    def test_verify_malformed_hash_is_false(self, passwords: PasswordService):
        assert passwords.verify("not-a-hash", "whatever") is False
        assert passwords.verify("$argon2id$broken", "whatever") is False
        assert passwords.verify(None, "whatever") is False
        assert passwords.verify("", "whatever") is False

    def test_needs_rehash_current_policy(self, passwords: PasswordService):
        assert passwords.needs_rehash(passwords.hash("pw-12345678")) is False

    def test_needs_rehash_weaker_policy(self, passwords: PasswordService):
        legacy = PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1).hash("pw-12345678")

        assert passwords.verify(legacy, "pw-12345678") is True
        assert passwords.needs_rehash(legacy) is True

    def test_needs_rehash_malformed(self, passwords: PasswordService):
        assert passwords.needs_rehash("garbage") is True

    def test_dummy_verify_returns_nothing(self, passwords: PasswordService):
        assert passwords.dummy_verify("anything") is None


class TestJwtService:
    """Token encoding and validation."""

    def test_access_token_round_trip(self, jwt_service: JwtService):
        user_id = uuid4()
        token = jwt_service.create_access_token(user_id, "a@example.com", "PARENT")

        claims = jwt_service.decode_access_token(token)

        assert claims.user_id == user_id
        assert claims.email == "a@example.com"
        assert claims.role == "PARENT"

    def test_access_token_carries_issuer_and_audience(self, jwt_service: JwtService):
        token = jwt_service.create_access_token(uuid4(), "a@example.com", "CHILD")
        payload = jwt.get_unverified_claims(token)

        assert payload["iss"] == settings.jwt_issuer
        assert payload["aud"] == settings.jwt_audience
        assert payload["type"] == "access"
        assert payload["exp"] - payload["iat"] == settings.access_token_expire_minutes * 60

    def test_expired_access_token(self, jwt_service: JwtService):
        token = jwt_service.create_access_token(
            uuid4(), "a@example.com", "PARENT", expires_delta=timedelta(seconds=-5)
        )

        with pytest.raises(ExpiredTokenError):
            jwt_service.decode_access_token(token)

    def test_refresh_token_rejected_as_access_token(self, jwt_service: JwtService):
        token = jwt_service.create_refresh_token(uuid4(), uuid4())

        with pytest.raises(InvalidTokenError):
            jwt_service.decode_access_token(token)

    def test_access_token_rejected_as_refresh_token(self, jwt_service: JwtService):
        token = jwt_service.create_access_token(uuid4(), "a@example.com", "PARENT")

        with pytest.raises(InvalidTokenError):
            jwt_service.decode_refresh_token(token)

    def test_wrong_audience_rejected(self, jwt_service: JwtService):
        token = jwt.encode(
            {
                "sub": str(uuid4()),
                "email": "a@example.com",
                "role": "PARENT",
                "type": "access",
                "iss": settings.jwt_issuer,
                "aud": "someone-else",
            },
            settings.jwt_access_secret,
            algorithm=settings.jwt_algorithm,
        )

        with pytest.raises(InvalidTokenError):
            jwt_service.decode_access_token(token)

    def test_foreign_secret_rejected(self, jwt_service: JwtService):
        forged = JwtService(settings.model_copy(update={"jwt_access_secret": "other-secret"}))
        token = forged.create_access_token(uuid4(), "a@example.com", "PARENT")

        with pytest.raises(InvalidTokenError):
            jwt_service.decode_access_token(token)

    def test_garbage_rejected(self, jwt_service: JwtService):
        with pytest.raises(InvalidTokenError):
            jwt_service.decode_refresh_token("not.a.jwt")

    def test_refresh_token_claims(self, jwt_service: JwtService):
        user_id, token_id = uuid4(), uuid4()
        claims = jwt_service.decode_refresh_token(
            jwt_service.create_refresh_token(user_id, token_id)
        )

        assert claims.user_id == user_id
        assert claims.token_id == token_id

    def test_password_reset_token(self, jwt_service: JwtService):
        user_id = uuid4()
        token = jwt_service.create_password_reset_token(user_id, "a@example.com")

        claims = jwt_service.decode_password_reset_token(token)

        assert claims.user_id == user_id
        assert claims.email == "a@example.com"
        with pytest.raises(InvalidTokenError):
            jwt_service.decode_access_token(token)

    def test_hash_token_is_keyed_and_stable(self, jwt_service: JwtService):
        digest = jwt_service.hash_token("some-token")

        assert digest == jwt_service.hash_token("some-token")
        assert digest != jwt_service.hash_token("other-token")
        assert len(digest) == 64
