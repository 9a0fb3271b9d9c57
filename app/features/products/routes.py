"""
Product catalogue API routes.

Every route checks the caller's grant on the "products" module: read for
listings, create/update/delete for the matching mutation.
"""
import math
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.exceptions import DuplicateSlug, NotFound, PersistenceFailure, ValidationFailed
from app.features.users.models import User
from app.features.modules.service import slugify
from app.features.permissions.models import Action
from app.features.products.dependencies import require_products_permission
from app.features.products.models import Category, Product
from app.features.products.schemas import (
    CategoryCreate,
    CategoryResponse,
    ProductCreate,
    ProductPage,
    ProductResponse,
    ProductUpdate,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def get_product_or_404(db: AsyncSession, product_id: str) -> Product:
    result = await db.execute(
        select(Product)
        .where(Product.id == product_id)
        .execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if product is None:
        raise NotFound("Product not found")
    return product


async def ensure_category_exists(db: AsyncSession, category_id: str) -> None:
    if await db.scalar(select(Category.id).where(Category.id == category_id)) is None:
        raise ValidationFailed("Category not found", fields={"category_id": "Category not found"})


# ============================================================================
# Category Routes
# ============================================================================

@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_products_permission(Action.READ))
):
    """Active categories by name."""
    result = await db.execute(
        select(Category).where(Category.is_active.is_(True)).order_by(Category.name)
    )
    return result.scalars().all()


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    category: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_products_permission(Action.CREATE))
):
    """
    Create a category.

    Raises:
        ValidationFailed: name has no letters or digits to build a slug from
        DuplicateSlug: another category already derives the same slug
    """
    slug = slugify(category.name)
    if not slug:
        message = "Name must contain at least one letter or digit"
        raise ValidationFailed(message, fields={"name": message})

    duplicate = DuplicateSlug(f"A category with the slug '{slug}' already exists.")
    if await db.scalar(select(Category.id).where(Category.slug == slug)) is not None:
        raise duplicate

    db_category = Category(name=category.name, slug=slug, description=category.description)
    db.add(db_category)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise duplicate

    log.info(f"Category {slug} created by {current_user.id}")
    return db_category


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_products_permission(Action.DELETE))
):
    """Delete a category that no product is filed under."""
    db_category = await db.scalar(select(Category).where(Category.id == category_id))
    if db_category is None:
        raise NotFound("Category not found")

    product_count = await db.scalar(
        select(func.count(Product.id)).where(Product.category_id == category_id)
    )
    if product_count:
        raise ValidationFailed("Cannot delete category with existing products")

    await db.delete(db_category)
    await db.commit()
    log.info(f"Category {category_id} deleted by {current_user.id}")
    return None


# ============================================================================
# Product Routes
# ============================================================================

@router.get("/", response_model=ProductPage)
async def list_products(
    search: Optional[str] = None,
    category_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_products_permission(Action.READ))
):
    """
    Page through products, newest first.

    Parameters:
        search (str | None): Case-insensitive match on name, SKU prefix or description.
        category_id (str | None): Restrict to one category; "all" means no filter.
        page (int): 1-based page number.
        page_size (int): Products per page.
    """
    conditions = []
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            Product.name.ilike(pattern),
            Product.sku_prefix.ilike(pattern),
            Product.description.ilike(pattern),
        ))
    if category_id and category_id != "all":
        conditions.append(Product.category_id == category_id)

    total = await db.scalar(select(func.count(Product.id)).where(*conditions)) or 0
    result = await db.execute(
        select(Product)
        .where(*conditions)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return ProductPage(
        products=[ProductResponse.model_validate(product) for product in result.scalars().all()],
        total=total,
        total_pages=math.ceil(total / page_size),
        current_page=page,
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_products_permission(Action.READ))
):
    return await get_product_or_404(db, product_id)


@router.post("/", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    product: ProductCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_products_permission(Action.CREATE))
):
    """Create a product in an existing category."""
    await ensure_category_exists(db, product.category_id)

    db_product = Product(**product.model_dump())
    db.add(db_product)
    try:
        await db.commit()
    except SQLAlchemyError:
        log.exception(f"Error creating product {product.name!r}")
        await db.rollback()
        raise PersistenceFailure("Failed to create product")

    log.info(f"Product {db_product.id} created by {current_user.id}")
    return await get_product_or_404(db, db_product.id)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    product_update: ProductUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_products_permission(Action.UPDATE))
):
    """Replace every field of a product."""
    db_product = await get_product_or_404(db, product_id)
    await ensure_category_exists(db, product_update.category_id)

    for field, value in product_update.model_dump().items():
        setattr(db_product, field, value)
    try:
        await db.commit()
    except SQLAlchemyError:
        log.exception(f"Error updating product {product_id}")
        await db.rollback()
        raise PersistenceFailure("Failed to update product")

    log.info(f"Product {product_id} updated by {current_user.id}")
    return await get_product_or_404(db, product_id)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_products_permission(Action.DELETE))
):
    db_product = await get_product_or_404(db, product_id)
    await db.delete(db_product)
    await db.commit()
    log.info(f"Product {product_id} deleted by {current_user.id}")
    return None
