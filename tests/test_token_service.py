"""Tests for refresh token issuance, rotation and revocation."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.core.exceptions import (
    ExpiredRefreshTokenError,
    InvalidRefreshTokenError,
    RevokedRefreshTokenError,
    UserDeletedError,
)
from finwise.models.base import utcnow
from finwise.models.refresh_tokens import refresh_tokens


async def _count_tokens(db: AsyncSession, active_only: bool = False) -> int:
    query = select(func.count()).select_from(refresh_tokens)
    if active_only:
        query = query.where(refresh_tokens.c.revoked_at.is_(None))
    return (await db.execute(query)).scalar_one()


@pytest.mark.asyncio
class TestTokenService:
    """Refresh token lifecycle."""

    async def test_generate_pair_stores_digest_only(self, services, db_session, test_user):
        tokens = services.token_service

        pair = await tokens.generate_token_pair(
            db_session, test_user["id"], test_user["email"], test_user["role"]
        )

        rows = (await db_session.execute(select(refresh_tokens))).mappings().all()
        assert len(rows) == 1
        assert rows[0]["token_hash"] == services.jwt_service.hash_token(pair.refresh_token)
        assert rows[0]["token_hash"] != pair.refresh_token
        assert rows[0]["revoked_at"] is None

        claims = tokens.verify_refresh_token(pair.refresh_token)
        assert claims.token_id == rows[0]["id"]
        assert tokens.verify_access_token(pair.access_token).user_id == test_user["id"]

    async def test_rotation_is_single_use(self, services, db_session, test_user):
        tokens = services.token_service
        pair = await tokens.generate_token_pair(
            db_session, test_user["id"], test_user["email"], test_user["role"]
        )

        rotated = await tokens.refresh_tokens(db_session, pair.refresh_token)

        assert rotated.refresh_token != pair.refresh_token
        with pytest.raises(RevokedRefreshTokenError):
            await tokens.refresh_tokens(db_session, pair.refresh_token)
        # The replacement still works
        await tokens.refresh_tokens(db_session, rotated.refresh_token)

    async def test_concurrent_rotation_has_one_winner(
        self, services, db_session, test_user, monkeypatch
    ):
        tokens = services.token_service
        pair = await tokens.generate_token_pair(
            db_session, test_user["id"], test_user["email"], test_user["role"]
        )
        original = tokens._revoke_if_active

        async def lose_race(db, token_id):
            # Another request revokes the token between lookup and revoke
            await db.execute(
                update(refresh_tokens)
                .where(refresh_tokens.c.id == token_id)
                .values(revoked_at=utcnow())
            )
            await db.commit()
            return await original(db, token_id)

        monkeypatch.setattr(tokens, "_revoke_if_active", lose_race)

        with pytest.raises(RevokedRefreshTokenError):
            await tokens.refresh_tokens(db_session, pair.refresh_token)

        # No replacement pair was minted for the loser
        assert await _count_tokens(db_session) == 1

    async def test_unknown_token_rejected(self, services, db_session, test_user):
        token = services.jwt_service.create_refresh_token(test_user["id"], uuid4())

        with pytest.raises(InvalidRefreshTokenError):
            await services.token_service.refresh_tokens(db_session, token)

    async def test_garbage_token_rejected(self, services, db_session):
        with pytest.raises(InvalidRefreshTokenError):
            await services.token_service.refresh_tokens(db_session, "garbage")

    async def test_expired_token_rejected(self, services, db_session, test_user):
        token = services.jwt_service.create_refresh_token(
            test_user["id"], uuid4(), expires_delta=timedelta(seconds=-5)
        )

        with pytest.raises(ExpiredRefreshTokenError):
            await services.token_service.refresh_tokens(db_session, token)

    async def test_expired_row_rejected(self, services, db_session, test_user):
        tokens = services.token_service
        pair = await tokens.generate_token_pair(
            db_session, test_user["id"], test_user["email"], test_user["role"]
        )
        await db_session.execute(
            update(refresh_tokens).values(expires_at=utcnow() - timedelta(minutes=1))
        )
        await db_session.commit()

        with pytest.raises(ExpiredRefreshTokenError):
            await tokens.refresh_tokens(db_session, pair.refresh_token)

    async def test_deleted_user_cannot_refresh(self, services, db_session, test_user):
        tokens = services.token_service
        pair = await tokens.generate_token_pair(
            db_session, test_user["id"], test_user["email"], test_user["role"]
        )
        await services.user_service.soft_delete_user(db_session, test_user["id"])
        await db_session.commit()

        with pytest.raises(UserDeletedError):
            await tokens.refresh_tokens(db_session, pair.refresh_token)

    async def test_revoke_is_idempotent(self, services, db_session, test_user):
        tokens = services.token_service
        pair = await tokens.generate_token_pair(
            db_session, test_user["id"], test_user["email"], test_user["role"]
        )

        await tokens.revoke_refresh_token(db_session, pair.refresh_token)
        first = (await db_session.execute(select(refresh_tokens.c.revoked_at))).scalar_one()
        await tokens.revoke_refresh_token(db_session, pair.refresh_token)
        second = (await db_session.execute(select(refresh_tokens.c.revoked_at))).scalar_one()
        await tokens.revoke_refresh_token(db_session, "never-issued")

        assert first is not None
        assert first == second
        with pytest.raises(RevokedRefreshTokenError):
            await tokens.refresh_tokens(db_session, pair.refresh_token)

    async def test_revoke_all_user_tokens(self, services, db_session, test_user, child_user):
        tokens = services.token_service
        for _ in range(3):
            await tokens.generate_token_pair(
                db_session, test_user["id"], test_user["email"], test_user["role"]
            )
        await tokens.generate_token_pair(
            db_session, child_user["id"], child_user["email"], child_user["role"]
        )

        revoked = await tokens.revoke_all_user_tokens(db_session, test_user["id"])

        assert revoked == 3
        assert await _count_tokens(db_session, active_only=True) == 1

    async def test_cleanup_removes_expired_and_stale_revoked(
        self, services, db_session, test_user
    ):
        now = utcnow()
        rows = {
            "active": {"expires_at": now + timedelta(days=1), "revoked_at": None},
            "expired": {"expires_at": now - timedelta(days=1), "revoked_at": None},
            "recently_revoked": {
                "expires_at": now + timedelta(days=1),
                "revoked_at": now - timedelta(days=1),
            },
            "long_revoked": {
                "expires_at": now + timedelta(days=1),
                "revoked_at": now - timedelta(days=60),
            },
        }
        for name, values in rows.items():
            await db_session.execute(
                insert(refresh_tokens).values(
                    id=uuid4(),
                    user_id=test_user["id"],
                    token_hash=services.jwt_service.hash_token(name),
                    created_at=now,
                    **values,
                )
            )
        await db_session.commit()

        deleted = await services.token_service.cleanup_expired_tokens(db_session)

        assert deleted == 2
        remaining = (
            await db_session.execute(select(refresh_tokens.c.token_hash))
        ).scalars().all()
        assert set(remaining) == {
            services.jwt_service.hash_token("active"),
            services.jwt_service.hash_token("recently_revoked"),
        }
