import os
import tempfile
from collections.abc import AsyncGenerator
from uuid import uuid4

# Settings are read at import time, so the test environment must be in place first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_ACCESS_SECRET"] = "test-access-secret"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret"
os.environ["TOKEN_HASH_SECRET"] = "test-token-hash-secret"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="finwise-test-uploads-")
os.environ["GOOGLE_CLIENT_ID"] = "test-google-client-id"
os.environ["APPLE_CLIENT_ID"] = ""
os.environ["SMTP_HOST"] = ""
os.environ["LOG_FORMAT"] = "console"
os.environ["AUTH_RATE_LIMIT_ATTEMPTS"] = "1000"

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Load remaining variables from .env without overriding the ones above
load_dotenv()

from finwise.database import get_db
from finwise.main import app
from finwise.models import metadata
from finwise.models.base import utcnow
from finwise.models.users import users
from finwise.models.verification_requests import verification_requests

PASSWORD = "Sup3rSecret!"


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Start every test with no recorded credential attempts."""
    app.state.auth_rate_limiter.reset()


@pytest.fixture
def services():
    """The service graph the application runs with."""
    return app.state


@pytest.fixture
def sent_emails(monkeypatch) -> list[tuple]:
    """Capture outgoing notifications instead of sending them."""
    sent: list[tuple] = []
    mailer = app.state.mailer

    def capture(name):
        async def fake_send(*args, **kwargs):
            sent.append((name, args, kwargs))

        return fake_send

    for name in (
        "send_parent_welcome_email",
        "send_child_welcome_email",
        "send_parent_signup_notification_to_admin",
        "send_password_reset_email",
    ):
        monkeypatch.setattr(mailer, name, capture(name))

    return sent


async def create_user(
    db: AsyncSession,
    email: str = "parent@example.com",
    name: str = "Pat Parent",
    role: str = "PARENT",
    password: str | None = PASSWORD,
    password_hash: str | None = None,
    verification_status: str | None = "PENDING",
) -> dict:
    """Insert a user directly, bypassing signup."""
    if password_hash is None and password is not None:
        password_hash = app.state.password_service.hash(password)
    now = utcnow()
    values = {
        "id": uuid4(),
        "email": email,
        "name": name,
        "role": role,
        "password_hash": password_hash,
        "avatar_url": None,
        "created_at": now,
        "updated_at": now,
        "deleted_at": None,
    }
    await db.execute(insert(users).values(**values))
    if verification_status is not None:
        await db.execute(
            insert(verification_requests).values(
                id=uuid4(),
                user_id=values["id"],
                role=role,
                status=verification_status,
                created_at=now,
            )
        )
    await db.commit()
    return values


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory inserting users into the test database."""

    async def _make(**kwargs) -> dict:
        return await create_user(db_session, **kwargs)

    return _make


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> dict:
    """A parent with a password and a pending verification."""
    return await create_user(db_session)


@pytest_asyncio.fixture
async def child_user(db_session: AsyncSession) -> dict:
    """A child account."""
    return await create_user(db_session, email="kid@example.com", name="Kim Kid", role="CHILD")


@pytest.fixture
def auth_headers(test_user: dict) -> dict:
    """Create authentication headers for testing protected endpoints."""
    token = app.state.jwt_service.create_access_token(
        test_user["id"], test_user["email"], test_user["role"]
    )
    return {"Authorization": f"Bearer {token}"}
