"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.features.roles.schemas import RoleResponse


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class SignupRequest(UserBase):
    """Self-registration. New users get the default signup role."""
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserCreate(UserBase):
    """Schema for an admin creating a user."""
    password: str = Field(..., min_length=6, max_length=128)
    role_id: str = Field(..., min_length=1, description="Role ID")
    is_active: bool = True


class UserUpdate(UserBase):
    """Schema for an admin updating a user. Password is changed only when sent."""
    password: Optional[str] = Field(None, min_length=6, max_length=128)
    role_id: str = Field(..., min_length=1, description="Role ID")
    is_active: bool = True


class ProfileUpdate(BaseModel):
    """Schema for updating the current user's own profile."""
    name: str = Field(..., min_length=1, max_length=100)
    current_password: Optional[str] = None
    new_password: Optional[str] = Field(None, min_length=6, max_length=128)


class UserResponse(UserBase):
    """Schema for user responses."""
    id: str
    is_active: bool
    role_id: str
    role: Optional[RoleResponse] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SessionResponse(BaseModel):
    """Issued session, also set as the session cookie."""
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse
    redirect: str = "/dashboard"
