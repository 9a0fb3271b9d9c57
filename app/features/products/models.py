"""
Category and Product models for the product catalogue.
"""
import enum
from datetime import date
from sqlalchemy import String, ForeignKey, Boolean, Date, Numeric, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, UlidPrimaryKeyMixin


class RegulatoryStatus(str, enum.Enum):
    """Food and drug authority registration state."""
    APPROVED = "Approved"
    PENDING = "Pending"
    NOT_SUBMITTED = "Not Submitted"


class ProductStatus(str, enum.Enum):
    ACTIVE = "Active"
    IN_DEVELOPMENT = "In Development"
    DISCONTINUED = "Discontinued"


class Category(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """
    Product grouping.

    Attributes:
        name: Display name
        slug: Unique, derived from name
        is_active: Inactive categories are left out of the listing
        products: Products filed under this category
    """
    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    # Deletion is refused while any product remains
    products = relationship("Product", back_populates="category", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, slug={self.slug!r})>"


class Product(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """A catalogue entry. Every product belongs to exactly one category."""
    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    category_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("categories.id"),
        nullable=False,
        index=True
    )
    sku_prefix: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    key_ingredients: Mapped[str | None] = mapped_column(Text, nullable=True)
    caffeine_free: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    regulatory_status: Mapped[RegulatoryStatus] = mapped_column(
        SQLEnum(RegulatoryStatus, values_callable=lambda e: [member.value for member in e]),
        nullable=False,
        default=RegulatoryStatus.NOT_SUBMITTED
    )
    regulatory_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    base_cost: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    base_retail_price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[ProductStatus] = mapped_column(
        SQLEnum(ProductStatus, values_callable=lambda e: [member.value for member in e]),
        nullable=False,
        default=ProductStatus.IN_DEVELOPMENT
    )
    launch_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Relationships
    category: Mapped["Category"] = relationship("Category", back_populates="products", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name!r})>"
