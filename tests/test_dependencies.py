"""Tests for the authentication and role dependencies."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.core.exceptions import AppException
from finwise.database import get_db
from finwise.dependencies import OptionalUser, require_auth, require_role
from finwise.main import app
from finwise.middleware.error_handler import app_exception_handler


def build_guarded_app(db_session: AsyncSession) -> FastAPI:
    guarded = FastAPI()
    guarded.state.token_service = app.state.token_service
    guarded.state.user_service = app.state.user_service
    guarded.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    guarded.dependency_overrides[get_db] = override_get_db

    @guarded.get("/parents", dependencies=[Depends(require_auth), Depends(require_role("PARENT"))])
    async def parents_only() -> dict:
        return {"ok": True}

    @guarded.get("/role-without-auth", dependencies=[Depends(require_role("PARENT"))])
    async def role_without_auth() -> dict:
        return {"ok": True}

    @guarded.get("/maybe")
    async def maybe(user: OptionalUser) -> dict:
        return {"user": user.email if user else None}

    return guarded


@pytest_asyncio.fixture
async def guarded_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=build_guarded_app(db_session))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def bearer(user: dict) -> dict:
    token = app.state.jwt_service.create_access_token(user["id"], user["email"], user["role"])
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
class TestRequireRole:
    """Role checks on top of authentication."""

    async def test_allowed_role(self, guarded_client: AsyncClient, test_user: dict):
        response = await guarded_client.get("/parents", headers=bearer(test_user))

        assert response.status_code == 200

    async def test_forbidden_role(self, guarded_client: AsyncClient, child_user: dict):
        response = await guarded_client.get("/parents", headers=bearer(child_user))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    async def test_unauthenticated(self, guarded_client: AsyncClient):
        response = await guarded_client.get("/parents")

        assert response.status_code == 401

    async def test_role_check_without_auth(self, guarded_client: AsyncClient, test_user: dict):
        response = await guarded_client.get("/role-without-auth", headers=bearer(test_user))

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Authentication required"

    async def test_non_bearer_scheme(self, guarded_client: AsyncClient):
        response = await guarded_client.get(
            "/parents", headers={"Authorization": "Basic dXNlcjpwYXNz"}
        )

        assert response.status_code == 401

    async def test_garbage_token(self, guarded_client: AsyncClient):
        response = await guarded_client.get(
            "/parents", headers={"Authorization": "Bearer not-a-token"}
        )

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid token"


@pytest.mark.asyncio
class TestOptionalAuth:
    """Anonymous access with identity when available."""

    async def test_authenticated(self, guarded_client: AsyncClient, test_user: dict):
        response = await guarded_client.get("/maybe", headers=bearer(test_user))

        assert response.json() == {"user": test_user["email"]}

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer garbage"}, {"Authorization": "Token abc"}],
    )
    async def test_anonymous(self, guarded_client: AsyncClient, headers: dict):
        response = await guarded_client.get("/maybe", headers=headers)

        assert response.status_code == 200
        assert response.json() == {"user": None}
