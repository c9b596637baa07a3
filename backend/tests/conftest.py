# tests/conftest.py - Shared test fixtures
import os
import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User
from auth import AuthService, CurrentUser
from database import get_db_session, enable_sqlite_foreign_keys
from repository import ScopedRepository
from main import app


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def attachment_root(tmp_path, monkeypatch):
    """Keep uploaded files inside the test's temp directory"""
    root = tmp_path / "attachments"
    monkeypatch.setenv("ATTACHMENT_STORAGE_ROOT", str(root))
    return root


async def _make_user(db_session, email: str, display_name: str) -> User:
    user = User(
        id=str(uuid.uuid4()),
        email=email,
        display_name=display_name,
        password_hash=AuthService.hash_password("TestPassword123!"),
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session):
    """Create a test user"""
    return await _make_user(db_session, "testuser@clientdesk.dev", "Test User")


@pytest_asyncio.fixture
async def other_user(db_session):
    """A second identity that must never see test_user's rows"""
    return await _make_user(db_session, "other@clientdesk.dev", "Other User")


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token_data = {
        "sub": user.id,
        "email": user.email,
    }
    token = AuthService.create_access_token(token_data)
    return {"Authorization": f"Bearer {token}"}


def scoped_repository(db_session, user: User) -> ScopedRepository:
    """Repository bound to ``user`` for tests that skip the HTTP layer"""
    identity = CurrentUser(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        is_active=True,
    )
    return ScopedRepository(db_session, identity)
