"""
Test infrastructure for the Alogix API.

Strategy
--------
- SQLite in-memory via aiosqlite; no Postgres needed in CI.
- StaticPool makes every session share the one in-memory connection
  (an in-memory SQLite database is connection-scoped).
- ``get_db`` is overridden so requests use the test session factory.
- Tables are created before and dropped after each test.
- Redis is disabled by setting ``cache._redis = None``; the CacheManager
  treats that as "always miss, never write".
- Signed-in users are created directly in the database with a real
  session token, so requests exercise the real SessionResolver.
- The email sender is swapped for one that records outgoing links.
"""
from dataclasses import dataclass

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from alogix.auth.sessions import issue_session
from alogix.cache import cache
from alogix.config import auth_config
from alogix.database import Base, get_db, run_after_commit
from alogix.main import app
from alogix.middleware import install_query_counter
from alogix.models import User

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
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


# ---------------------------------------------------------------------------
# Dependency override: replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        await run_after_commit(session)


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@dataclass
class SignedInUser:
    id: str
    name: str
    email: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


class RecordingEmailSender:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send_magic_link(self, email: str, url: str) -> None:
        self.sent.append((email, url))


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
    """A live AsyncSession for seeding data or asserting ORM state directly."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """httpx.AsyncClient wired to the FastAPI app, with Redis disabled."""
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sign_in():
    """
    Factory fixture: ``await sign_in("alice")`` creates a user with a live
    session and returns a :class:`SignedInUser` whose ``headers`` carry
    the bearer token.
    """

    async def _sign_in(name: str = "alice", email: str | None = None) -> SignedInUser:
        email = email or f"{name}@example.com"
        async with async_session_test() as session:
            user = User(name=name, email=email, email_verified=True)
            session.add(user)
            await session.flush()
            token = await issue_session(session, auth_config, user)
            await session.commit()
        return SignedInUser(id=user.id, name=name, email=email, token=token)

    return _sign_in


@pytest.fixture
def email_outbox():
    """Capture magic links instead of logging them."""
    original = app.state.email_sender
    sender = RecordingEmailSender()
    app.state.email_sender = sender
    yield sender.sent
    app.state.email_sender = original
