from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..models import Base


def to_async_url(database_url: str) -> str:
    """Swap a plain SQLite URL for its aiosqlite equivalent."""
    # For SQLite, we need to use aiosqlite driver
    if database_url.startswith("sqlite:///"):
        return database_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return database_url


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async SQLAlchemy engine for ``database_url``."""
    return create_async_engine(to_async_url(database_url), echo=echo)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by the scheduler, the API and the CLI."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables asynchronously."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
