"""
User feature routes: sessions, own profile and admin user management.
"""
from datetime import datetime, timezone
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.core.exceptions import NotFound, ValidationFailed
from app.features.users.auth import create_session_token, hash_password, verify_password
from app.features.users.dependencies import get_current_user, load_user
from app.features.users.models import User
from app.features.users.schemas import (
    LoginRequest,
    ProfileUpdate,
    SessionResponse,
    SignupRequest,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from app.features.roles.models import Role, ADMIN_ROLE_NAME
from app.features.permissions.dependencies import get_current_admin_user
from app.utils import get_logger


log = get_logger(__name__)
auth_router = APIRouter(tags=["auth"])
router = APIRouter(tags=["users"])


async def get_user_or_404(db: AsyncSession, user_id: str) -> User:
    user = await load_user(db, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


async def ensure_email_free(db: AsyncSession, email: str, except_user_id: str | None = None) -> None:
    stmt = select(User.id).where(User.email == email)
    if except_user_id is not None:
        stmt = stmt.where(User.id != except_user_id)
    if (await db.execute(stmt)).scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already exists"
        )


async def ensure_role_exists(db: AsyncSession, role_id: str) -> None:
    if (await db.execute(select(Role.id).where(Role.id == role_id))).scalar_one_or_none() is None:
        raise NotFound("Role not found")


def start_session(response: Response, user: User) -> SessionResponse:
    """Issue a session token and set it as an httpOnly cookie."""
    token, expires = create_session_token(user.id)
    response.set_cookie(
        key=config.SESSION_COOKIE_NAME,
        value=token,
        expires=expires,
        httponly=True,
        secure=config.SECURE_COOKIES,
        samesite="lax",
        path="/",
    )
    return SessionResponse(
        access_token=token,
        expires_at=expires,
        user=UserResponse.model_validate(user),
    )


# ============================================================================
# Session Routes
# ============================================================================

@auth_router.post("/signup", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    signup_data: SignupRequest,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Register a new account with the default signup role and log it in."""
    result = await db.execute(select(User.id).where(User.email == signup_data.email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists"
        )

    result = await db.execute(select(Role).where(Role.name == config.DEFAULT_SIGNUP_ROLE))
    role = result.scalar_one_or_none()
    if role is None:
        role = Role(name=config.DEFAULT_SIGNUP_ROLE)
        db.add(role)
        await db.flush()
        log.info(f"Created default signup role {role.name}")

    user = User(
        name=signup_data.name,
        email=signup_data.email,
        password_hash=hash_password(signup_data.password),
        role_id=role.id,
        last_login_at=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.commit()

    user = await load_user(db, user.id)
    log.info(f"User {user.id} signed up")
    return start_session(response, user)


@auth_router.post("/login", response_model=SessionResponse)
async def login(
    credentials: LoginRequest,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Verify credentials and start a session."""
    result = await db.execute(select(User).where(User.email == credentials.email))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account is deactivated."
        )

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()

    user = await load_user(db, user.id)
    return start_session(response, user)


@auth_router.post("/logout")
async def logout(response: Response):
    """End the session by clearing the cookie."""
    response.delete_cookie(config.SESSION_COOKIE_NAME, path="/")
    return {"success": True, "redirect": "/login"}


# ============================================================================
# Profile Routes
# ============================================================================

@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: ProfileUpdate,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update current user's name, and password when a new one is sent."""
    if update_data.new_password:
        if not update_data.current_password:
            raise ValidationFailed(
                "Current password is required to change password",
                fields={"current_password": "Current password is required to change password"},
            )
        if not verify_password(update_data.current_password, user.password_hash):
            raise ValidationFailed(
                "Current password is incorrect",
                fields={"current_password": "Current password is incorrect"},
            )
        user.password_hash = hash_password(update_data.new_password)

    user.name = update_data.name
    await db.commit()
    return await load_user(db, user.id)


# ============================================================================
# Admin User Management
# ============================================================================

@router.get("/", response_model=list[UserResponse])
async def list_users(
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List users outside the admin role, newest first (admin only)."""
    result = await db.execute(
        select(User)
        .join(Role, User.role_id == Role.id)
        .where(Role.name != ADMIN_ROLE_NAME)
        .order_by(User.created_at.desc(), User.id.desc())
    )
    return result.scalars().all()


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a user with a role (admin only)."""
    await ensure_email_free(db, user_data.email)
    await ensure_role_exists(db, user_data.role_id)

    user = User(
        name=user_data.name,
        email=user_data.email,
        password_hash=hash_password(user_data.password),
        role_id=user_data.role_id,
        is_active=user_data.is_active,
    )
    db.add(user)
    await db.commit()
    log.info(f"User {user.id} created by {admin.id}")
    return await load_user(db, user.id)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update a user's details, role and status (admin only)."""
    user = await get_user_or_404(db, user_id)
    await ensure_email_free(db, user_data.email, except_user_id=user_id)
    await ensure_role_exists(db, user_data.role_id)

    user.name = user_data.name
    user.email = user_data.email
    user.role_id = user_data.role_id
    user.is_active = user_data.is_active
    if user_data.password:
        user.password_hash = hash_password(user_data.password)

    await db.commit()
    return await load_user(db, user.id)


@router.patch("/{user_id}/toggle-active", response_model=UserResponse)
async def toggle_user_active(
    user_id: str,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Activate or deactivate a user (admin only)."""
    user = await get_user_or_404(db, user_id)

    # Prevent self-deactivation
    if user.id == admin.id:
        raise ValidationFailed("You cannot deactivate your own account")

    user.is_active = not user.is_active
    await db.commit()
    return await load_user(db, user.id)


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a user and their permission overrides (admin only)."""
    user = await get_user_or_404(db, user_id)

    # Prevent self-deletion
    if user.id == admin.id:
        raise ValidationFailed("You cannot delete your own account")

    await db.delete(user)
    await db.commit()
    log.info(f"User {user_id} deleted by {admin.id}")
    return {"message": "User deleted successfully"}
