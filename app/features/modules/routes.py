"""
Module feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.dependencies import get_current_user
from app.features.modules.schemas import (
    ModuleCreate,
    ModuleUpdate,
    ModuleResponse,
    ModuleNodeResponse,
    ModulePageResponse,
    ModuleDeleteResponse,
)
from app.features.modules.service import (
    create_module,
    delete_module,
    get_module,
    get_module_page,
    get_module_tree,
    update_module,
)
from app.features.permissions.dependencies import get_current_admin_user, require_module_permission
from app.features.permissions.models import Action
from app.features.permissions.service import load_visible_tree


router = APIRouter(tags=["modules"])


@router.get("/navigation", response_model=list[ModuleNodeResponse])
async def get_navigation(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Module forest the current user may see in the sidebar."""
    return await load_visible_tree(db, user)


@router.get("/page/{slug:path}", response_model=ModulePageResponse)
async def get_page(
    slug: str,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """A module page, if the current user may read it."""
    page = await get_module_page(db, slug, user)
    return ModulePageResponse(
        module=ModuleResponse.model_validate(page.module),
        parent=ModuleResponse.model_validate(page.parent) if page.parent else None,
        children=[ModuleResponse.model_validate(child) for child in page.children],
        title=page.title,
    )


# Admin-only routes
@router.get("/", response_model=list[ModuleNodeResponse])
async def list_module_tree(
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Every module, active or not, as a forest (admin only)."""
    tree = await get_module_tree(db)
    return tree.forest()


@router.post("/", response_model=ModuleResponse, status_code=status.HTTP_201_CREATED)
async def create_module_route(
    module_data: ModuleCreate,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a module (admin only). Top-level modules get a Dashboard child."""
    return await create_module(
        db,
        admin,
        name=module_data.name,
        type=module_data.type,
        parent_id=module_data.parent_id,
        icon=module_data.icon,
    )


@router.patch("/{module_id}", response_model=ModuleResponse)
async def update_module_route(
    module_id: str,
    module_data: ModuleUpdate,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update a module (admin only)."""
    return await update_module(db, module_id, module_data, admin)


@router.delete("/{module_id}", response_model=ModuleDeleteResponse)
async def delete_module_route(
    module_id: str,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a module with all descendants and their grants (admin only)."""
    deleted = await delete_module(db, module_id, admin)
    return ModuleDeleteResponse(
        message="Module deleted successfully",
        deleted_modules=deleted,
    )


@router.get("/{module_id}", response_model=ModuleResponse)
async def get_module_route(
    module_id: str,
    user: Annotated[User, Depends(require_module_permission(Action.READ))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """A single module, if the current user may read it."""
    return await get_module(db, module_id)
