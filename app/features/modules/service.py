"""
Module lifecycle: create, update and recursive delete.

Every mutation is admin-only and runs as one unit of work on the caller's
session: it either commits completely or is rolled back completely. The
auto-created dashboard of a top-level module is a separate, best-effort unit.
"""
import re
from dataclasses import dataclass
from typing import Optional
from pydantic import ValidationError
from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.exceptions import DuplicateSlug, NotFound, PersistenceFailure, Unauthorized, ValidationFailed
from app.features.users.models import User
from app.features.modules.models import Module, ModuleType
from app.features.modules.schemas import ModuleCreate, ModuleUpdate
from app.features.modules.tree import ModuleTree
from app.features.permissions.models import Action, PermissionFlags, RolePermission, UserPermission
from app.features.permissions.dependencies import can_access, ensure_admin
from app.utils import get_logger


log = get_logger(__name__)

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")

DASHBOARD_NAME = "Dashboard"


def slugify(name: str) -> str:
    """
    Derive a URL-safe slug from a module name.

    Lower-cases, collapses every run of characters outside [a-z0-9] into one
    hyphen and strips hyphens from both ends:

        >>> slugify("Key Metrics!!")
        'key-metrics'
    """
    return _NON_ALPHANUMERIC.sub("-", name.lower()).strip("-")


def duplicate_slug_message(slug: str) -> str:
    return f"A module with the slug '{slug}' already exists. Please choose a different name."


def _validation_fields(exc: ValidationError) -> dict[str, str]:
    fields = {}
    for error in exc.errors():
        key = error["loc"][-1] if error.get("loc") else "root"
        fields[str(key)] = error["msg"]
    return fields


# ============================================================================
# Queries
# ============================================================================

async def list_modules(db: AsyncSession, active_only: bool = False) -> list[Module]:
    """All modules in sibling order."""
    stmt = select(Module).order_by(Module.order, Module.id)
    if active_only:
        stmt = stmt.where(Module.is_active == True)  # noqa: E712
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_module_tree(db: AsyncSession) -> ModuleTree:
    return ModuleTree(await list_modules(db))


async def get_module(db: AsyncSession, module_id: str) -> Module:
    """Get module by ID or raise NotFound."""
    result = await db.execute(select(Module).where(Module.id == module_id))
    module = result.scalar_one_or_none()
    if module is None:
        raise NotFound("Module not found")
    return module


async def next_sibling_order(db: AsyncSession, parent_id: Optional[str]) -> int:
    """
    One more than the highest order among modules sharing parent_id.

    Top-level modules (parent_id None) are compared amongst themselves.
    Starts at 1 when there are no siblings.
    """
    stmt = select(func.max(Module.order))
    if parent_id is None:
        stmt = stmt.where(Module.parent_id.is_(None))
    else:
        stmt = stmt.where(Module.parent_id == parent_id)
    current_max = (await db.execute(stmt)).scalar()
    return (current_max or 0) + 1


@dataclass
class ModulePage:
    """A module the viewer may read, with its surroundings."""
    module: Module
    parent: Optional[Module]
    children: list[Module]

    @property
    def title(self) -> str:
        # A dashboard child is titled after the module it belongs to
        if self.module.type == ModuleType.DASHBOARD and self.parent is not None:
            return f"{self.parent.name} Dashboard"
        return self.module.name


async def get_module_page(db: AsyncSession, slug: str, user: User) -> ModulePage:
    """
    Load a module by slug for display.

    The navigation tree only lists modules; reading a page's content always
    goes through the resolver here.

    Raises:
        NotFound: no module has this slug
        Unauthorized: the user may not read the module
    """
    result = await db.execute(select(Module).where(Module.slug == slug))
    module = result.scalar_one_or_none()
    if module is None:
        raise NotFound("Module not found")

    if not can_access(user, module.id, Action.READ):
        raise Unauthorized("You do not have permission to view this module.")

    parent = None
    if module.parent_id is not None:
        parent = (await db.execute(select(Module).where(Module.id == module.parent_id))).scalar_one_or_none()

    children_result = await db.execute(
        select(Module)
        .where(Module.parent_id == module.id)
        .order_by(Module.order, Module.id)
    )
    return ModulePage(module=module, parent=parent, children=list(children_result.scalars().all()))


# ============================================================================
# Create
# ============================================================================

def _grant_full_access(user: User, module_id: str) -> RolePermission:
    """Give the user's role all four verbs on a module."""
    grant = RolePermission(module_id=module_id)
    grant.apply(PermissionFlags.full())
    user.role.permissions.append(grant)
    return grant


async def create_module(
    db: AsyncSession,
    acting_user: User,
    name: str,
    type: ModuleType | str = ModuleType.PAGE,
    parent_id: Optional[str] = None,
    icon: Optional[str] = None,
) -> Module:
    """
    Create a module and grant the creator's role full access to it.

    Top-level modules also get a "Dashboard" child, created best-effort:
    if that step fails the parent is still returned.

    Raises:
        Unauthorized: acting user is not an admin
        ValidationFailed: empty name, bad type, or a name with no usable slug
        NotFound: parent_id does not exist
        DuplicateSlug: another module already uses the derived slug
        PersistenceFailure: any other store error
    """
    ensure_admin(acting_user)

    try:
        data = ModuleCreate(name=name, type=type, parent_id=parent_id, icon=icon)
    except ValidationError as e:
        fields = _validation_fields(e)
        log.info(f"Module validation failed: {fields}")
        raise ValidationFailed(next(iter(fields.values()), None), fields=fields)

    slug = slugify(data.name)
    if not slug:
        raise ValidationFailed(
            "Name must contain at least one letter or digit",
            fields={"name": "Name must contain at least one letter or digit"},
        )

    if data.parent_id is not None:
        await get_module(db, data.parent_id)

    order = await next_sibling_order(db, data.parent_id)
    log.info(f"Creating module: name={data.name!r} slug={slug} order={order} type={data.type.value} parent={data.parent_id}")

    module = Module(
        name=data.name,
        slug=slug,
        type=data.type,
        parent_id=data.parent_id,
        icon=data.icon,
        order=order,
    )

    try:
        db.add(module)
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise DuplicateSlug(duplicate_slug_message(slug))

    try:
        _grant_full_access(acting_user, module.id)
        await db.commit()
    except SQLAlchemyError:
        log.exception(f"Error creating module {slug}")
        await db.rollback()
        raise PersistenceFailure("Failed to create module")

    await db.refresh(module)

    if module.parent_id is None:
        await _create_dashboard_child(db, module, acting_user)

    return module


async def _create_dashboard_child(db: AsyncSession, parent: Module, acting_user: User) -> Optional[Module]:
    """
    Add the "Dashboard" page under a new top-level module.

    Failures are logged and swallowed; the parent is already committed.
    """
    dashboard_slug = f"{parent.slug}-dashboard"

    try:
        taken = (await db.execute(select(Module.id).where(Module.slug == dashboard_slug))).scalar_one_or_none()
        if taken is not None:
            log.warning(f"Skipping dashboard for module {parent.id}: slug {dashboard_slug} already in use")
            return None

        dashboard = Module(
            name=DASHBOARD_NAME,
            slug=dashboard_slug,
            type=ModuleType.DASHBOARD,
            parent_id=parent.id,
            order=1,
            icon=config.DEFAULT_DASHBOARD_ICON,
        )
        db.add(dashboard)
        await db.flush()
        _grant_full_access(acting_user, dashboard.id)
        await db.commit()
        await db.refresh(dashboard)
    except SQLAlchemyError:
        log.exception(f"Failed to auto-create dashboard child for module {parent.id}")
        await db.rollback()
        await db.refresh(parent)
        return None

    return dashboard


# ============================================================================
# Update
# ============================================================================

async def update_module(
    db: AsyncSession,
    module_id: str,
    data: ModuleUpdate,
    acting_user: User,
) -> Module:
    """
    Rename, re-icon, reorder, (de)activate or move a module.

    Moving re-checks the tree so a module never ends up under itself or one
    of its own descendants.
    """
    ensure_admin(acting_user)
    module = await get_module(db, module_id)
    changes = data.model_dump(exclude_unset=True)

    if "parent_id" in changes and changes["parent_id"] != module.parent_id:
        new_parent_id = changes["parent_id"]
        if new_parent_id is not None:
            await get_module(db, new_parent_id)

        tree = await get_module_tree(db)
        if tree.would_create_cycle(module.id, new_parent_id):
            message = "A module cannot be moved under itself or one of its descendants"
            raise ValidationFailed(message, fields={"parent_id": message})

        if "order" not in changes:
            module.order = await next_sibling_order(db, new_parent_id)
        module.parent_id = new_parent_id

    if changes.get("name") is not None:
        slug = slugify(changes["name"])
        if not slug:
            raise ValidationFailed(
                "Name must contain at least one letter or digit",
                fields={"name": "Name must contain at least one letter or digit"},
            )
        module.name = changes["name"].strip()
        module.slug = slug

    if "icon" in changes:
        module.icon = changes["icon"]
    if changes.get("order") is not None:
        module.order = changes["order"]
    if changes.get("is_active") is not None:
        module.is_active = changes["is_active"]

    slug = module.slug
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateSlug(duplicate_slug_message(slug))
    except SQLAlchemyError:
        log.exception(f"Error updating module {module_id}")
        await db.rollback()
        raise PersistenceFailure("Failed to update module")

    await db.refresh(module)
    log.info(f"Updated module {module_id}: {sorted(changes)}")
    return module


# ============================================================================
# Delete
# ============================================================================

async def _delete_recursive(db: AsyncSession, module_id: str) -> int:
    """Delete a module's subtree, children before parent. Returns rows removed."""
    result = await db.execute(select(Module.id).where(Module.parent_id == module_id))
    removed = 0
    for child_id in result.scalars().all():
        removed += await _delete_recursive(db, child_id)

    await db.execute(delete(RolePermission).where(RolePermission.module_id == module_id))
    await db.execute(delete(UserPermission).where(UserPermission.module_id == module_id))
    await db.execute(delete(Module).where(Module.id == module_id))
    return removed + 1


async def delete_module(db: AsyncSession, module_id: str, acting_user: User) -> int:
    """
    Delete a module, all of its descendants and every grant on any of them.

    Runs as a single transaction; a failure part way through leaves nothing
    deleted.

    Returns:
        Number of module rows removed (descendants + 1)
    """
    ensure_admin(acting_user)
    await get_module(db, module_id)

    try:
        removed = await _delete_recursive(db, module_id)
        await db.commit()
    except SQLAlchemyError:
        log.exception(f"Error deleting module {module_id}")
        await db.rollback()
        raise PersistenceFailure("Failed to delete module")

    log.info(f"Deleted module {module_id} and {removed - 1} descendant(s)")
    return removed
