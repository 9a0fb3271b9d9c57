"""
Tree authorization view and permission editor.
"""
from typing import Iterable, Mapping, Optional, Sequence
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound, PersistenceFailure
from app.features.users.dependencies import load_user
from app.features.users.models import User
from app.features.roles.models import Role
from app.features.modules.models import Module
from app.features.modules.service import list_modules
from app.features.modules.tree import ModuleNode, ModuleTree
from app.features.permissions.dependencies import ensure_admin, readable_module_ids
from app.features.permissions.models import Action, PermissionFlags, PermissionFlagsMixin, RolePermission, UserPermission
from app.features.permissions.schemas import PermissionEntry
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Tree Authorization View
# ============================================================================

def visible_tree(user: Optional[User], modules: Iterable[Module | ModuleNode]) -> list[ModuleNode]:
    """
    Build the navigation forest a user may see.

    1. Modules the user can read directly
    2. Plus the direct parent of each of those, so a readable page is never
       hidden inside an unlisted folder (one level only)
    3. Forest: parentless nodes, or nodes whose parent is not listed, are
       roots; siblings ascend by order

    Each node's can_read is its own resolved read permission, so an inferred
    parent comes back with can_read=False. Listing is not access: page
    content must still be checked with can_access. Inactive modules are left
    out.
    """
    tree = ModuleTree(module for module in modules if module.is_active)
    direct = readable_module_ids(user, (node.id for node in tree))

    listed = set(direct)
    for module_id in direct:
        parent_id = tree.get(module_id).parent_id
        if parent_id is not None and parent_id in tree:
            listed.add(parent_id)

    return tree.forest(include=listed, readable=direct)


async def load_visible_tree(db: AsyncSession, user: User) -> list[ModuleNode]:
    return visible_tree(user, await list_modules(db, active_only=True))


# ============================================================================
# Permission Editor
# ============================================================================

def cascade_permission(
    tree: ModuleTree,
    current: Mapping[str, PermissionFlags],
    module_id: str,
    action: Action,
    value: bool,
) -> dict[str, PermissionFlags]:
    """
    Apply one checkbox change to an edit session.

    Sets action=value on module_id and, when it is a FOLDER, on every
    descendant. The other three verbs of each affected module keep their
    values from current (all false where there is no grant yet).

    Returns:
        The new flags of every affected module, keyed by module id
    """
    node = tree.get(module_id)
    if node is None:
        raise NotFound("Module not found")

    affected = [node]
    if node.is_folder:
        affected.extend(tree.descendants(module_id))

    return {
        target.id: current.get(target.id, PermissionFlags()).with_action(action, value)
        for target in affected
    }


def _upsert_grants(
    grants: list,
    entries: Sequence[PermissionEntry],
    make_grant,
) -> list[PermissionFlagsMixin]:
    """Replace the four verbs of each listed module, inserting missing rows."""
    by_module = {grant.module_id: grant for grant in grants}
    touched = {}
    for entry in entries:
        grant = by_module.get(entry.module_id)
        if grant is None:
            grant = make_grant(entry.module_id)
            grants.append(grant)
            by_module[entry.module_id] = grant
        grant.apply(entry.flags())
        touched[entry.module_id] = grant
    return list(touched.values())


async def _get_role(db: AsyncSession, role_id: str) -> Role:
    result = await db.execute(
        select(Role)
        .where(Role.id == role_id)
        .execution_options(populate_existing=True)
    )
    role = result.scalar_one_or_none()
    if role is None:
        raise NotFound("Role not found")
    return role


async def set_role_permissions(
    db: AsyncSession,
    role_id: str,
    entries: Sequence[PermissionEntry],
    acting_user: User,
) -> list[RolePermission]:
    """
    Upsert a role's grants for the listed modules.

    Each entry fully replaces the (role, module) row. Modules that are not
    listed are left untouched. The batch is one transaction: if any row
    fails (for example an unknown module id) none are applied.

    Raises:
        Unauthorized: acting user is not an admin
        NotFound: role does not exist
        PersistenceFailure: the store rejected the batch
    """
    ensure_admin(acting_user)
    role = await _get_role(db, role_id)

    try:
        touched = _upsert_grants(role.permissions, entries, lambda module_id: RolePermission(module_id=module_id))
        await db.commit()
    except SQLAlchemyError:
        log.exception(f"Error updating permissions of role {role_id}")
        await db.rollback()
        raise PersistenceFailure("Failed to update permissions")

    log.info(f"Updated {len(touched)} permission(s) of role {role_id}")
    return touched


async def set_user_permissions(
    db: AsyncSession,
    user_id: str,
    entries: Sequence[PermissionEntry],
    acting_user: User,
) -> list[UserPermission]:
    """
    Upsert a user's additive overrides for the listed modules.

    Same contract as set_role_permissions, keyed by user instead of role.
    """
    ensure_admin(acting_user)
    user = await load_user(db, user_id)
    if user is None:
        raise NotFound("User not found")

    try:
        touched = _upsert_grants(user.permissions, entries, lambda module_id: UserPermission(module_id=module_id))
        await db.commit()
    except SQLAlchemyError:
        log.exception(f"Error updating permissions of user {user_id}")
        await db.rollback()
        raise PersistenceFailure("Failed to update permissions")

    log.info(f"Updated {len(touched)} permission override(s) of user {user_id}")
    return touched


async def toggle_role_permission(
    db: AsyncSession,
    role_id: str,
    module_id: str,
    action: Action,
    value: bool,
    acting_user: User,
) -> list[RolePermission]:
    """
    Set one verb on one module for a role, cascading through folders.

    The module and, for folders, all of its descendants are written in a
    single set_role_permissions call.
    """
    ensure_admin(acting_user)
    role = await _get_role(db, role_id)
    tree = ModuleTree(await list_modules(db))

    current = {grant.module_id: grant.flags() for grant in role.permissions}
    changed = cascade_permission(tree, current, module_id, action, value)
    entries = [PermissionEntry.from_flags(changed_id, flags) for changed_id, flags in changed.items()]
    return await set_role_permissions(db, role_id, entries, acting_user)


async def get_role_permission_rows(db: AsyncSession, role_id: str) -> list[tuple[Module, Optional[RolePermission]]]:
    """Active modules, by type then order, each with the role's grant or None."""
    role = await _get_role(db, role_id)
    grants = {grant.module_id: grant for grant in role.permissions}

    result = await db.execute(
        select(Module)
        .where(Module.is_active == True)  # noqa: E712
        .order_by(Module.type, Module.order, Module.id)
    )
    return [(module, grants.get(module.id)) for module in result.scalars().all()]
