"""
Pydantic schemas for the product catalogue.
"""
from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from app.features.products.models import ProductStatus, RegulatoryStatus


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


class CategoryCreate(BaseModel):
    """Schema for creating a category. The slug is derived from name."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()

    @field_validator("description", mode="before")
    @classmethod
    def blank_description(cls, v):
        return _blank_to_none(v)


class CategoryResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class CategorySummary(BaseModel):
    id: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class ProductBase(BaseModel):
    """Fields a client sends on create and on update."""
    name: str = Field(..., min_length=1, max_length=200, description="Product name")
    category_id: str = Field(..., min_length=1, description="Category ID")
    sku_prefix: str = Field(..., min_length=1, max_length=10, description="SKU prefix")
    description: Optional[str] = None
    key_ingredients: Optional[str] = None
    caffeine_free: bool = False
    regulatory_status: RegulatoryStatus = RegulatoryStatus.NOT_SUBMITTED
    regulatory_reference: Optional[str] = Field(None, max_length=100)
    base_cost: float = Field(..., ge=0, description="Base cost must be positive")
    base_retail_price: float = Field(..., ge=0, description="Base retail price must be positive")
    image_url: Optional[str] = Field(None, max_length=500)
    status: ProductStatus = ProductStatus.IN_DEVELOPMENT
    launch_date: Optional[date] = None

    @field_validator("name", "sku_prefix")
    @classmethod
    def strip_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field is required")
        return v.strip()

    @field_validator(
        "description", "key_ingredients", "regulatory_reference", "image_url", "launch_date",
        mode="before"
    )
    @classmethod
    def blank_optional(cls, v):
        # Forms send "" for fields left empty
        return _blank_to_none(v)


class ProductCreate(ProductBase):
    pass


class ProductUpdate(ProductBase):
    """Full replacement of a product's fields."""
    pass


class ProductResponse(ProductBase):
    id: str
    category: CategorySummary
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductPage(BaseModel):
    """One page of the product listing."""
    products: list[ProductResponse]
    total: int
    total_pages: int
    current_page: int
