"""
Pydantic schemas for role management.
"""
from pydantic import BaseModel, Field, ConfigDict, field_validator


class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=50, description="Unique role name")

    @field_validator("name")
    @classmethod
    def name_lowercase(cls, v: str) -> str:
        """Role names are stored lower-cased."""
        v = v.strip().lower()
        if not v:
            raise ValueError("Role name is required")
        return v


class RoleCreate(RoleBase):
    """Schema for creating a new role."""
    pass


class RoleUpdate(RoleBase):
    """Schema for renaming a role."""
    pass


class RoleResponse(BaseModel):
    """Schema for role response."""
    id: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class RoleWithUserCount(RoleResponse):
    """Schema for role listing."""
    user_count: int = 0
