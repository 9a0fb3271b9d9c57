"""
Seed script to populate the default roles, admin account and modules.

Run this script after database initialization to create:
- The admin role and the default signup role
- An admin user with the seed credentials from config
- Products and Settings pages readable by the default signup role
- Full admin grants on every existing module

Every step is idempotent; running it twice changes nothing.

Usage:
    uv run python -m scripts.seed
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db, init_db
from app.features.users.auth import hash_password
from app.features.users.models import User
from app.features.roles.models import Role, ADMIN_ROLE_NAME
from app.features.modules.models import Module, ModuleType
from app.features.permissions.models import PermissionFlags, RolePermission
from app.utils import get_logger


log = get_logger(__name__)


DEFAULT_MODULES = [
    # (name, slug, type, order, icon)
    ("Products", "products", ModuleType.PAGE, 10, "FaBoxOpen"),
    ("Settings", "settings", ModuleType.PAGE, 99, "FaCog"),
]

# Modules the default signup role may read
SIGNUP_ROLE_READABLE = ["products", "settings"]


async def get_or_create_role(db: AsyncSession, name: str) -> Role:
    result = await db.execute(select(Role).where(Role.name == name))
    role = result.scalars().first()
    if role:
        log.debug(f"Role '{name}' already exists, skipping")
        return role

    role = Role(name=name)
    db.add(role)
    await db.flush()
    log.info(f"Created role: {name}")
    return role


async def seed_admin(db: AsyncSession, admin_role: Role) -> None:
    result = await db.execute(select(User).where(User.email == config.SEED_ADMIN_EMAIL))
    if result.scalars().first():
        log.debug(f"User '{config.SEED_ADMIN_EMAIL}' already exists, skipping")
        return

    db.add(User(
        name="Admin",
        email=config.SEED_ADMIN_EMAIL,
        password_hash=hash_password(config.SEED_ADMIN_PASSWORD),
        role_id=admin_role.id,
    ))
    log.info(f"Created admin user: {config.SEED_ADMIN_EMAIL}")


async def seed_modules(db: AsyncSession) -> dict[str, Module]:
    """
    Create default modules.

    Returns:
        Dictionary mapping slugs to Module objects
    """
    modules_map = {}
    for name, slug, module_type, order, icon in DEFAULT_MODULES:
        result = await db.execute(select(Module).where(Module.slug == slug))
        existing = result.scalars().first()
        if existing:
            log.debug(f"Module '{slug}' already exists, skipping")
            modules_map[slug] = existing
            continue

        module = Module(name=name, slug=slug, type=module_type, order=order, icon=icon)
        db.add(module)
        modules_map[slug] = module
        log.info(f"Created module: {slug}")

    await db.flush()
    return modules_map


async def seed_grants(db: AsyncSession, role: Role, flags: PermissionFlags, module_ids: list[str]) -> None:
    """Add a grant with flags for every module the role has no row for yet."""
    result = await db.execute(select(RolePermission.module_id).where(RolePermission.role_id == role.id))
    existing = set(result.scalars().all())

    created = 0
    for module_id in module_ids:
        if module_id in existing:
            continue
        grant = RolePermission(role_id=role.id, module_id=module_id)
        grant.apply(flags)
        db.add(grant)
        created += 1

    log.info(f"Granted role '{role.name}' {created} new permission(s)")


async def main():
    """Main function to seed roles, users, modules and grants."""
    log.info("Starting seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # Get database session
    async for db in get_db():
        try:
            admin_role = await get_or_create_role(db, ADMIN_ROLE_NAME)
            signup_role = await get_or_create_role(db, config.DEFAULT_SIGNUP_ROLE)
            await seed_admin(db, admin_role)

            modules_map = await seed_modules(db)
            all_module_ids = list((await db.execute(select(Module.id))).scalars().all())
            await seed_grants(db, admin_role, PermissionFlags.full(), all_module_ids)
            await seed_grants(
                db,
                signup_role,
                PermissionFlags(read=True),
                [modules_map[slug].id for slug in SIGNUP_ROLE_READABLE],
            )

            await db.commit()
            log.info("Seeding completed successfully!")

        except Exception as e:
            log.error(f"Error seeding: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
