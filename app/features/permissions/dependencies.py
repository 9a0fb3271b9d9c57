"""
Permission checking utilities and dependencies for module-scoped RBAC.

Implements:
- The admin bypass (named admin role or an admin-equivalent role)
- The (user, module, action) resolver over role grants and user overrides
- FastAPI dependencies for route protection
"""
from typing import Annotated, Optional
from fastapi import Depends

from app.core.exceptions import Unauthorized
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.roles.models import ADMIN_ROLE_NAME
from app.features.permissions.models import Action
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Resolver
# ============================================================================

def has_admin_access(user: Optional[User]) -> bool:
    """
    Check whether a user holds global administrative capability.

    True for members of the role named "admin", and for members of any role
    holding a grant with all four verbs on some module. The second form is a
    coarse detector: one fully granted module makes the whole role an admin.
    """
    if user is None or user.role is None:
        return False

    if user.role.name == ADMIN_ROLE_NAME:
        return True

    return any(grant.flags().is_full for grant in user.role.permissions)


def can_access(user: Optional[User], module_id: str, action: Action | str) -> bool:
    """
    Check if user may perform an action on a module.

    Evaluated as a short-circuit OR:
    1. Admin bypass
    2. Role grant for (role, module) with the action's column true
    3. User override for (user, module) with the action's column true

    There is no explicit deny: adding a grant anywhere can only turn a False
    into a True. Inactive modules are not filtered here.

    Args:
        user: User loaded with role, role grants and overrides
        module_id: Module ULID
        action: One of create, read, update, delete

    Returns:
        True if access is allowed
    """
    if user is None:
        return False

    action = Action(action)

    if has_admin_access(user):
        return True

    role_grants = user.role.permissions if user.role is not None else []
    if any(grant.module_id == module_id and grant.allows(action) for grant in role_grants):
        return True

    if any(override.module_id == module_id and override.allows(action) for override in user.permissions):
        return True

    log.debug(f"User {user.id} denied {action.value} on module {module_id}")
    return False


def readable_module_ids(user: Optional[User], module_ids) -> set[str]:
    """Subset of module_ids the user may read."""
    return {module_id for module_id in module_ids if can_access(user, module_id, Action.READ)}


def ensure_admin(user: Optional[User]) -> User:
    """
    Raise Unauthorized unless user passes the admin bypass.

    Services call this before any mutation.
    """
    if not has_admin_access(user):
        log.debug(f"Admin check failed for user {user.id if user else None}")
        raise Unauthorized("Admin privileges required")
    return user


# ============================================================================
# FastAPI Dependencies
# ============================================================================

async def get_current_admin_user(
    user: Annotated[User, Depends(get_current_user)]
) -> User:
    """
    Require admin privileges.

    Usage:
        @router.delete("/modules/{module_id}")
        async def delete_module(
            module_id: str,
            admin: User = Depends(get_current_admin_user)
        ):
            # Only admins can access this endpoint
            ...
    """
    return ensure_admin(user)


def require_module_permission(action: Action):
    """
    FastAPI dependency to require an action on the module in the path.

    Usage:
        @router.get("/modules/{module_id}/content")
        async def read_content(
            module_id: str,
            user: User = Depends(require_module_permission(Action.READ))
        ):
            pass

    Raises:
        Unauthorized: if the resolver denies the action
    """
    async def permission_dependency(
        module_id: str,
        current_user: Annotated[User, Depends(get_current_user)]
    ) -> User:
        if not can_access(current_user, module_id, action):
            raise Unauthorized(f"Permission denied: {action.value} on this module")
        return current_user

    return permission_dependency
