"""
Async engine, session factory and schema bootstrap.

The URL comes from DATABASE_URL. SQLite (aiosqlite) is the default; any async
driver URL such as postgresql+asyncpg://... works unchanged, apart from
installing the driver.
"""
from collections.abc import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.core import config


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """
    Turn on foreign key enforcement for every SQLite connection.

    SQLite ignores FOREIGN KEY clauses unless the pragma is set per connection;
    without it an unknown role or module id would be stored silently.
    """
    if async_engine.url.get_backend_name() != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Create async engine
engine = create_async_engine(
    config.SQLALCHEMY_DATABASE_URL,
    # One connection per session on SQLite, so the FK pragma is set on each
    poolclass=NullPool if config.SQLALCHEMY_DATABASE_URL.startswith("sqlite") else None,
    echo=config.SQL_ECHO,
    future=True,
)
enable_sqlite_foreign_keys(engine)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.
    
    Services commit their own units of work; anything left pending when the
    request ends is committed here, and an exception rolls it back.

    Usage in FastAPI routes:
        @router.get("/modules")
        async def list_modules(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Module))
            return result.scalars().all()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def import_models() -> None:
    """Import every model module so its tables are registered on Base.metadata."""
    from app.features.users.models import User  # noqa: F401
    from app.features.roles.models import Role  # noqa: F401
    from app.features.modules.models import Module  # noqa: F401
    from app.features.permissions.models import RolePermission, UserPermission  # noqa: F401
    from app.features.products.models import Category, Product  # noqa: F401


async def init_db(bind: AsyncEngine | None = None):
    """
    Create any missing tables.

    Runs on application startup and from scripts/seed.py. Tests pass their
    own in-memory engine as bind.
    """
    from app.core.database.base import Base

    import_models()

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
