"""
Permission API routes.

Access checks for the current user and per-user override editing.
"""
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.exceptions import NotFound
from app.features.users.dependencies import get_current_user, load_user
from app.features.users.models import User
from app.features.permissions.dependencies import can_access, get_current_admin_user, has_admin_access
from app.features.permissions.schemas import (
    PermissionCheckRequest,
    PermissionCheckResponse,
    SetPermissionsRequest,
    UserPermissionResponse,
)
from app.features.permissions.service import set_user_permissions


router = APIRouter()


# ============================================================================
# Permission Check Routes
# ============================================================================

@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check_request: PermissionCheckRequest,
    current_user: User = Depends(get_current_user)
):
    """Check if the current user may perform an action on a module."""
    allowed = can_access(current_user, check_request.module_id, check_request.action)
    return PermissionCheckResponse(
        allowed=allowed,
        reason=None if allowed else "Permission denied"
    )


@router.get("/me/admin", response_model=PermissionCheckResponse)
async def check_admin(current_user: User = Depends(get_current_user)):
    """Whether the current user passes the admin bypass."""
    allowed = has_admin_access(current_user)
    return PermissionCheckResponse(allowed=allowed, reason=None if allowed else "Admin privileges required")


# ============================================================================
# User Override Routes
# ============================================================================

@router.get("/users/{user_id}", response_model=List[UserPermissionResponse])
async def get_user_permissions(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """List a user's permission overrides (admin only)."""
    user = await load_user(db, user_id)
    if user is None:
        raise NotFound("User not found")
    return user.permissions


@router.put("/users/{user_id}", response_model=List[UserPermissionResponse])
async def update_user_permissions(
    user_id: str,
    request: SetPermissionsRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Upsert a user's overrides for the listed modules (admin only)."""
    return await set_user_permissions(db, user_id, request.permissions, current_user)
