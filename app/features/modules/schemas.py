"""
Pydantic schemas for module requests and responses.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from app.features.modules.models import ModuleType


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    # Forms send "" or "null" for "no parent"
    if v is None:
        return None
    v = v.strip()
    if v in ("", "null"):
        return None
    return v


class ModuleCreate(BaseModel):
    """Schema for creating a module. Slug and order are derived."""
    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    type: ModuleType = Field(ModuleType.PAGE, description="PAGE or FOLDER")
    parent_id: Optional[str] = Field(None, description="Parent module ID (null for a top-level module)")
    icon: Optional[str] = Field(None, max_length=50, description="Icon token")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()

    @field_validator("type")
    @classmethod
    def type_not_dashboard(cls, v: ModuleType) -> ModuleType:
        """Dashboards are only created automatically."""
        if v == ModuleType.DASHBOARD:
            raise ValueError("Type must be PAGE or FOLDER")
        return v

    @field_validator("parent_id", "icon", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        return _blank_to_none(v) if isinstance(v, str) else v


class ModuleUpdate(BaseModel):
    """Schema for updating a module. Only fields that are sent change."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    icon: Optional[str] = Field(None, max_length=50)
    parent_id: Optional[str] = None
    order: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None

    @field_validator("parent_id", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        return _blank_to_none(v) if isinstance(v, str) else v


class ModuleResponse(BaseModel):
    """Schema for module response."""
    id: str
    name: str
    slug: str
    type: ModuleType
    parent_id: Optional[str] = None
    icon: Optional[str] = None
    order: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ModuleNodeResponse(BaseModel):
    """One node of a navigation forest."""
    id: str
    name: str
    slug: str
    type: ModuleType
    parent_id: Optional[str] = None
    icon: Optional[str] = None
    order: int
    can_read: bool
    descendant_count: int = 0
    children: list["ModuleNodeResponse"] = []

    model_config = ConfigDict(from_attributes=True)


class ModulePageResponse(BaseModel):
    """A readable module with its parent and ordered children."""
    module: ModuleResponse
    parent: Optional[ModuleResponse] = None
    children: list[ModuleResponse] = []
    title: str


class ModuleDeleteResponse(BaseModel):
    """Result of a recursive delete."""
    message: str
    deleted_modules: int


ModuleNodeResponse.model_rebuild()
