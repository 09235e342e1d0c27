from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from alogix.config import settings
from alogix.middleware import install_query_counter

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Every statement on this engine counts towards X-Query-Count.
install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# session.info key holding callbacks queued by after_commit().
AFTER_COMMIT_KEY = "after_commit"


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Request-scoped session dependency.

    Services flush but never commit; the transaction is committed here
    once the handler returns and rolled back if anything raised, so a
    failed guarded mutation leaves no partial writes behind. Callbacks
    registered with :func:`after_commit` run only after a successful commit.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            session.info.pop(AFTER_COMMIT_KEY, None)
            raise
        await run_after_commit(session)


def after_commit(session: AsyncSession, callback: Callable[[], Awaitable[Any]]) -> None:
    """Defer *callback* until the session's transaction has been committed."""
    session.info.setdefault(AFTER_COMMIT_KEY, []).append(callback)


async def run_after_commit(session: AsyncSession) -> None:
    for callback in session.info.pop(AFTER_COMMIT_KEY, []):
        await callback()


async def create_tables() -> None:
    """Create missing tables. Development convenience; Alembic owns production schema."""
    # Imported for its side effect of registering every mapper on Base.metadata.
    import alogix.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
