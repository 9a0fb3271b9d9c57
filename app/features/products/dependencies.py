"""
Route protection for the product catalogue.

Catalogue access is whatever the resolver allows on the module with slug
"products". Without that module only admins get through.
"""
from typing import Annotated, Optional
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.exceptions import Unauthorized
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.modules.models import Module
from app.features.permissions.dependencies import can_access, has_admin_access
from app.features.permissions.models import Action


PRODUCTS_MODULE_SLUG = "products"


async def get_products_module_id(db: AsyncSession) -> Optional[str]:
    return await db.scalar(select(Module.id).where(Module.slug == PRODUCTS_MODULE_SLUG))


def require_products_permission(action: Action):
    """
    FastAPI dependency requiring an action on the products module.

    Usage:
        @router.post("/")
        async def create_product(
            user: User = Depends(require_products_permission(Action.CREATE))
        ):
            ...

    Raises:
        Unauthorized: if the resolver denies the action
    """
    async def permission_dependency(
        db: Annotated[AsyncSession, Depends(get_db)],
        current_user: Annotated[User, Depends(get_current_user)]
    ) -> User:
        module_id = await get_products_module_id(db)
        if module_id is None:
            allowed = has_admin_access(current_user)
        else:
            allowed = can_access(current_user, module_id, action)
        if not allowed:
            raise Unauthorized("Permission denied")
        return current_user

    return permission_dependency
