"""
Pytest configuration and fixtures for all tests.

Every test gets a fresh in-memory SQLite database with foreign keys on.
"""
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database.engine import enable_sqlite_foreign_keys, get_db, init_db
from app.features.users.auth import hash_password
from app.features.users.dependencies import load_user
from app.features.users.models import User
from app.features.roles.models import Role, ADMIN_ROLE_NAME
from app.features.modules.models import Module, ModuleType
from app.features.permissions.models import PermissionFlags, RolePermission, UserPermission


TEST_PASSWORD = "secret123"


@pytest.fixture
async def engine():
    """Create an in-memory database engine with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def Session(engine):
    """Create session factory."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(Session):
    """Create a new database session for a test."""
    async with Session() as session:
        yield session


# ============================================================================
# Data helpers
# ============================================================================

async def create_role(db: AsyncSession, name: str) -> Role:
    role = Role(name=name)
    db.add(role)
    await db.commit()
    # Users load their own copy of the role with its grants
    db.expunge(role)
    return role


async def create_user(db: AsyncSession, role: Role, email: str, name: str = "Test User", is_active: bool = True) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(TEST_PASSWORD),
        role_id=role.id,
        is_active=is_active,
    )
    db.add(user)
    await db.commit()
    return await load_user(db, user.id)


async def create_module_row(
    db: AsyncSession,
    name: str,
    type: ModuleType = ModuleType.PAGE,
    parent: Optional[Module] = None,
    order: int = 1,
    is_active: bool = True,
    slug: Optional[str] = None,
) -> Module:
    """Insert a module directly, without the lifecycle service side effects."""
    module = Module(
        name=name,
        slug=slug or name.lower().replace(" ", "-"),
        type=type,
        parent_id=parent.id if parent else None,
        order=order,
        is_active=is_active,
    )
    db.add(module)
    await db.commit()
    return module


async def grant_role(db: AsyncSession, role: Role, module: Module, **flags) -> RolePermission:
    grant = RolePermission(role_id=role.id, module_id=module.id)
    grant.apply(PermissionFlags(**flags))
    db.add(grant)
    await db.commit()
    return grant


async def grant_user(db: AsyncSession, user: User, module: Module, **flags) -> UserPermission:
    override = UserPermission(user_id=user.id, module_id=module.id)
    override.apply(PermissionFlags(**flags))
    db.add(override)
    await db.commit()
    return override


# ============================================================================
# Standard fixtures
# ============================================================================

@pytest.fixture
async def admin_role(db):
    return await create_role(db, ADMIN_ROLE_NAME)


@pytest.fixture
async def guest_role(db):
    return await create_role(db, "guest")


@pytest.fixture
async def admin_user(db, admin_role):
    return await create_user(db, admin_role, "admin@example.com", name="Admin")


@pytest.fixture
async def guest_user(db, guest_role):
    return await create_user(db, guest_role, "guest@example.com", name="Guest")


@pytest.fixture
async def client(Session):
    """HTTP client against the app, bound to the test database."""
    from app.main import app

    async def override_get_db():
        async with Session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def fresh_user(Session):
    """Load a user through its own session, as a new request would."""
    async def _load(user_id: str) -> User:
        async with Session() as session:
            return await load_user(session, user_id)
    return _load


async def login(client: AsyncClient, email: str) -> dict:
    """Log in through the API and return a Bearer header for the session."""
    response = await client.post("/auth/login", json={"email": email, "password": TEST_PASSWORD})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
