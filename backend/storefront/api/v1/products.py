from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps.access import AccessContext, require_permissions
from storefront.core.roles import PERM
from storefront.db.session import get_db
from storefront.models.category import Category
from storefront.models.product import Product
from storefront.schemas.product import ProductCreate, ProductResponse, ProductUpdate

router = APIRouter(prefix="/products", tags=["products"])


async def _get_product_or_404(db: AsyncSession, product_id: uuid.UUID) -> Product:
    item = await db.get(Product, product_id)
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    return item


async def _ensure_category(db: AsyncSession, category_id: Optional[uuid.UUID]) -> None:
    if category_id is not None and await db.get(Category, category_id) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown category")


@router.get("", response_model=List[ProductResponse])
async def list_products(
    category: Optional[str] = Query(None, max_length=128, description="Category slug"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Product).where(Product.is_active.is_(True))
    if category:
        stmt = stmt.join(Category, Category.id == Product.category_id).where(Category.slug == category)
    stmt = stmt.order_by(Product.created_at.desc(), Product.name).limit(limit).offset(offset)

    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/{slug}", response_model=ProductResponse)
async def get_product(slug: str, db: AsyncSession = Depends(get_db)):
    stmt = select(Product).where(Product.slug == slug, Product.is_active.is_(True))
    item = (await db.execute(stmt)).scalars().first()
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    return item


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AccessContext = Depends(require_permissions(PERM.MANAGE_PRODUCTS, fresh=True)),
):
    existing = (await db.execute(select(Product.id).where(Product.slug == payload.slug))).first()
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A product with this slug already exists")
    await _ensure_category(db, payload.category_id)

    item = Product(
        id=uuid.uuid4(),
        created_by_user_id=ctx.user.id,
        is_active=True,
        **payload.model_dump(),
    )

    db.add(item)
    await db.commit()
    await db.refresh(item)
    return item


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: uuid.UUID,
    payload: ProductUpdate,
    db: AsyncSession = Depends(get_db),
    _ctx: AccessContext = Depends(require_permissions(PERM.MANAGE_PRODUCTS, fresh=True)),
):
    item = await _get_product_or_404(db, product_id)

    data = payload.model_dump(exclude_unset=True)
    if "category_id" in data:
        await _ensure_category(db, data["category_id"])

    for field, value in data.items():
        setattr(item, field, value)

    await db.commit()
    await db.refresh(item)
    return item


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def archive_product(
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _ctx: AccessContext = Depends(require_permissions(PERM.MANAGE_PRODUCTS, fresh=True)),
):
    # Soft delete: past orders keep pointing at the row.
    item = await _get_product_or_404(db, product_id)
    item.is_active = False
    await db.commit()
    return None
