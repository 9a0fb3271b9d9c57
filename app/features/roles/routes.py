"""
Role management API routes.

Provides role CRUD and the role permission editor.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.exceptions import NotFound, ValidationFailed
from app.features.users.models import User
from app.features.roles.models import Role, ADMIN_ROLE_NAME
from app.features.roles.schemas import RoleCreate, RoleUpdate, RoleResponse, RoleWithUserCount
from app.features.permissions.dependencies import get_current_admin_user
from app.features.permissions.schemas import (
    ModulePermissionRow,
    PermissionFlagsSchema,
    RolePermissionResponse,
    SetPermissionsRequest,
    TogglePermissionRequest,
)
from app.features.permissions.service import (
    get_role_permission_rows,
    set_role_permissions,
    toggle_role_permission,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def get_role_or_404(db: AsyncSession, role_id: str) -> Role:
    result = await db.execute(select(Role).where(Role.id == role_id))
    role = result.scalar_one_or_none()
    if role is None:
        raise NotFound("Role not found")
    return role


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/", response_model=List[RoleWithUserCount])
async def list_roles(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """List assignable roles (everything but admin) with their user counts."""
    stmt = (
        select(Role, func.count(User.id))
        .outerjoin(User, User.role_id == Role.id)
        .where(Role.name != ADMIN_ROLE_NAME)
        .group_by(Role.id)
        .order_by(Role.name)
    )
    result = await db.execute(stmt)
    return [
        RoleWithUserCount(id=role.id, name=role.name, user_count=user_count)
        for role, user_count in result.all()
    ]


@router.post("/", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Create a new role (admin only)."""
    existing = await db.execute(select(Role.id).where(Role.name == role.name))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role already exists"
        )

    try:
        db_role = Role(name=role.name)
        db.add(db_role)
        await db.commit()
        await db.refresh(db_role)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role already exists"
        )

    log.info(f"Role {db_role.name} created by {current_user.id}")
    return db_role


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_update: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Rename a role (admin only)."""
    db_role = await get_role_or_404(db, role_id)

    existing = await db.execute(select(Role.id).where(Role.name == role_update.name))
    existing_id = existing.scalar_one_or_none()
    if existing_id is not None and existing_id != role_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role name already exists"
        )

    db_role.name = role_update.name
    await db.commit()
    await db.refresh(db_role)
    return db_role


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Delete a role that no user holds (admin only). Its grants go with it."""
    db_role = await get_role_or_404(db, role_id)

    user_count = (await db.execute(
        select(func.count(User.id)).where(User.role_id == role_id)
    )).scalar() or 0
    if user_count > 0:
        raise ValidationFailed(f"Cannot delete role. {user_count} user(s) have this role assigned.")

    await db.delete(db_role)
    await db.commit()
    log.info(f"Role {role_id} deleted by {current_user.id}")
    return None


# ============================================================================
# Role Permission Routes
# ============================================================================

@router.get("/{role_id}/permissions", response_model=List[ModulePermissionRow])
async def get_role_permissions(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Active modules with this role's grant on each (admin only)."""
    rows = await get_role_permission_rows(db, role_id)
    return [
        ModulePermissionRow(
            id=module.id,
            name=module.name,
            slug=module.slug,
            type=module.type,
            parent_id=module.parent_id,
            permissions=PermissionFlagsSchema.model_validate(grant) if grant else None,
        )
        for module, grant in rows
    ]


@router.put("/{role_id}/permissions", response_model=List[RolePermissionResponse])
async def update_role_permissions(
    role_id: str,
    request: SetPermissionsRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Upsert this role's grants for the listed modules (admin only)."""
    return await set_role_permissions(db, role_id, request.permissions, current_user)


@router.post("/{role_id}/permissions/toggle", response_model=List[RolePermissionResponse])
async def toggle_permission(
    role_id: str,
    request: TogglePermissionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """
    Set one verb on one module (admin only).

    On a folder the same verb is applied to every descendant.
    """
    return await toggle_role_permission(
        db, role_id, request.module_id, request.action, request.value, current_user
    )
