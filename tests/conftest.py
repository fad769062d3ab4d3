"""
Test infrastructure for the Blog API.

Strategy
--------
- SQLite in-memory via aiosqlite, with StaticPool so every session shares
  the one connection an in-memory database lives on.
- The app's get_db dependency is overridden so every request uses the
  test session factory.
- Tables are created before each test and dropped after.
- Redis is disabled (cache._redis = None); the CacheManager treats that
  as a permanent miss.
- bcrypt runs at its minimum cost and tokens use a fixed secret; both are
  set in the environment before the application settings are imported.
"""
import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret-0123456789abcdefghijkl")
os.environ.setdefault("DEBUG", "false")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from blogapi.cache import cache
from blogapi.database import Base, get_db
from blogapi.main import app
from blogapi.middleware import install_query_counter
from blogapi.models import Category, Role, User
from blogapi.security import hash_password

# ---------------------------------------------------------------------------
# Test database engine — SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db

DEFAULT_PASSWORD = "secret1"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def token_service():
    return app.state.token_service


@pytest.fixture
def auth_headers(token_service):
    """``auth_headers(user)`` → an Authorization header carrying a fresh token."""

    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {token_service.issue(user.id)}"}

    return _headers


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Insert a user directly (bypassing registration) and return it."""

    async def _make(
        name: str = "Alice",
        email: str = "alice@example.com",
        password: str = DEFAULT_PASSWORD,
        role: str = Role.USER.value,
        is_active: bool = True,
    ) -> User:
        user = User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_category(db_session: AsyncSession):
    async def _make(name: str = "Tech", slug: str | None = None) -> Category:
        category = Category(name=name, slug=slug or name.lower().replace(" ", "-"))
        db_session.add(category)
        await db_session.commit()
        return category

    return _make
