import logging
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from yardwatch.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def resolve_database_url(url: str) -> str:
    """Rewrite PostgreSQL URLs to the psycopg (psycopg3) async driver."""
    # Note: Supabase/some providers use postgres:// while SQLAlchemy prefers postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if "+asyncpg" in url:
        return url.replace("+asyncpg", "+psycopg")
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


database_url = resolve_database_url(settings.database_url)
is_postgres = database_url.startswith("postgresql")

# NullPool everywhere: pgbouncer pools for PostgreSQL, and aiosqlite
# connections are tied to the event loop that opened them.
engine_kwargs = {
    "echo": settings.debug,
    "poolclass": NullPool,
}

if is_postgres:
    engine_kwargs["connect_args"] = {
        # Disable prepared statements for pgbouncer compatibility
        "prepare_threshold": None,
    }

logger.info(f"Database config: is_postgres={is_postgres}")

engine = create_async_engine(database_url, **engine_kwargs)

# Async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all models"""
    pass


async def init_db():
    """Initialize database tables"""
    # Make sure every model is registered on the metadata
    import yardwatch.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
