from __future__ import annotations

import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps.access import AccessContext, require_permissions
from storefront.core.roles import PERM
from storefront.db.session import get_db
from storefront.models.category import Category
from storefront.models.product import Product
from storefront.schemas.category import CategoryCreate, CategoryOut, CategoryUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/categories", tags=["categories"])

manage_categories = require_permissions(PERM.MANAGE_CATEGORIES, fresh=True)


async def _get_category_or_404(db: AsyncSession, category_id: uuid.UUID) -> Category:
    item = await db.get(Category, category_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return item


@router.get("", response_model=List[CategoryOut])
async def list_categories(db: AsyncSession = Depends(get_db)):
    res = await db.execute(select(Category).order_by(Category.name))
    return list(res.scalars().all())


@router.get("/{slug}", response_model=CategoryOut)
async def get_category(slug: str, db: AsyncSession = Depends(get_db)):
    item = (await db.execute(select(Category).where(Category.slug == slug))).scalars().first()
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return item


@router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AccessContext = Depends(manage_categories),
):
    existing = (await db.execute(select(Category.id).where(Category.slug == payload.slug))).first()
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A category with this slug already exists")

    item = Category(**payload.model_dump())
    db.add(item)
    await db.commit()
    await db.refresh(item)
    logger.info("User %s created category %s", ctx.user.id, item.slug)
    return item


@router.patch("/{category_id}", response_model=CategoryOut)
async def update_category(
    category_id: uuid.UUID,
    payload: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
    _ctx: AccessContext = Depends(manage_categories),
):
    item = await _get_category_or_404(db, category_id)

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(item, field, value)

    await db.commit()
    await db.refresh(item)
    return item


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AccessContext = Depends(manage_categories),
):
    item = await _get_category_or_404(db, category_id)

    # Products stay in the catalog, uncategorized.
    await db.execute(update(Product).where(Product.category_id == item.id).values(category_id=None))
    await db.delete(item)
    await db.commit()
    logger.info("User %s deleted category %s", ctx.user.id, item.slug)
    return None
