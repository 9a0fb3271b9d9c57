"""
Pydantic schemas for permission management.

Request and response models for grants, the bulk editor and access checks.
"""
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.features.modules.models import ModuleType
from app.features.permissions.models import Action, PermissionFlags


# ============================================================================
# Grant Schemas
# ============================================================================

class PermissionFlagsSchema(BaseModel):
    """The four verbs of a grant."""
    can_create: bool = False
    can_read: bool = False
    can_update: bool = False
    can_delete: bool = False

    model_config = ConfigDict(from_attributes=True)

    def flags(self) -> PermissionFlags:
        return PermissionFlags(
            create=self.can_create,
            read=self.can_read,
            update=self.can_update,
            delete=self.can_delete,
        )


class PermissionEntry(PermissionFlagsSchema):
    """One row of a bulk edit: replaces all four verbs on module_id."""
    module_id: str = Field(..., description="Module ID")

    @classmethod
    def from_flags(cls, module_id: str, flags: PermissionFlags) -> "PermissionEntry":
        return cls(
            module_id=module_id,
            can_create=flags.create,
            can_read=flags.read,
            can_update=flags.update,
            can_delete=flags.delete,
        )


class SetPermissionsRequest(BaseModel):
    """Bulk upsert. Modules not listed keep their current grants."""
    permissions: List[PermissionEntry] = Field(default_factory=list)


class TogglePermissionRequest(BaseModel):
    """Flip one verb on one module; folders cascade to their descendants."""
    module_id: str
    action: Action
    value: bool


class RolePermissionResponse(PermissionFlagsSchema):
    """Schema for a role grant."""
    id: str
    role_id: str
    module_id: str


class UserPermissionResponse(PermissionFlagsSchema):
    """Schema for a user override."""
    id: str
    user_id: str
    module_id: str


class ModulePermissionRow(BaseModel):
    """A module as shown in the role permission editor."""
    id: str
    name: str
    slug: str
    type: ModuleType
    parent_id: Optional[str] = None
    permissions: Optional[PermissionFlagsSchema] = None


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking if the current user may act on a module."""
    module_id: str = Field(..., description="Module ID")
    action: Action = Field(..., description="create, read, update or delete")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    allowed: bool
    reason: Optional[str] = None
