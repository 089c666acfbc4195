import logging
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, StaticPool
from wishlist.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Determine if we're using PostgreSQL or SQLite
# Note: Supabase/some providers use postgres:// while SQLAlchemy prefers postgresql://
is_postgres = settings.database_url.startswith("postgresql") or settings.database_url.startswith("postgres://")

# Transform the database URL to use the correct async driver
database_url = settings.database_url
if is_postgres:
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+psycopg://", 1)
    elif "+asyncpg" in database_url:
        database_url = database_url.replace("+asyncpg", "+psycopg")
    elif database_url.startswith("postgresql://") and "+psycopg" not in database_url:
        database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)

# Build engine kwargs based on database type
engine_kwargs = {
    "echo": settings.debug,
}

if is_postgres:
    # Let pgbouncer handle connection pooling
    engine_kwargs.update({
        "poolclass": NullPool,
        "connect_args": {
            "prepare_threshold": None,
        },
    })
elif ":memory:" in database_url:
    # A single shared connection, otherwise every session sees an empty database
    engine_kwargs.update({
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    })

logger.info(
    "Database config: is_postgres=%s, poolclass=%s",
    is_postgres, engine_kwargs.get("poolclass", "default"),
)

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


async def get_db() -> AsyncSession:
    """Dependency for getting async database sessions"""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Initialize database tables"""
    # Register all models on Base.metadata
    import wishlist.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db():
    """Drop all tables (used by tests)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
