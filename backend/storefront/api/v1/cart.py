from __future__ import annotations

import uuid
from decimal import Decimal
from typing import List, Tuple

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps.access import get_current_user
from storefront.db.session import get_db
from storefront.models.cart_item import CartItem
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.cart import CartItemAdd, CartItemUpdate, CartLineOut, CartOut
from storefront.schemas.product import ProductResponse

router = APIRouter(prefix="/cart", tags=["cart"])


async def cart_lines(db: AsyncSession, user_id: uuid.UUID) -> List[Tuple[CartItem, Product]]:
    stmt = (
        select(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.created_at.asc(), Product.name)
    )
    return [(item, product) for item, product in (await db.execute(stmt)).all()]


async def clear_cart(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Caller commits."""
    await db.execute(delete(CartItem).where(CartItem.user_id == user_id))


async def _cart_out(db: AsyncSession, user_id: uuid.UUID) -> CartOut:
    lines = []
    subtotal = Decimal("0")
    count = 0
    for item, product in await cart_lines(db, user_id):
        line_total = Decimal(product.price_amount) * item.quantity
        subtotal += line_total
        count += item.quantity
        lines.append(
            CartLineOut(
                id=item.id,
                product_id=product.id,
                quantity=item.quantity,
                line_total=line_total,
                product=ProductResponse.model_validate(product),
            )
        )
    return CartOut(items=lines, item_count=count, subtotal=subtotal)


async def _get_line(db: AsyncSession, user_id: uuid.UUID, product_id: uuid.UUID) -> CartItem | None:
    stmt = select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
    return (await db.execute(stmt)).scalar_one_or_none()


def _check_stock(product: Product, quantity: int) -> None:
    if product.stock_quantity < quantity:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "INSUFFICIENT_STOCK", "product_id": str(product.id), "available": product.stock_quantity},
        )


@router.get("", response_model=CartOut)
async def get_cart(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> CartOut:
    return await _cart_out(db, user.id)


@router.post("/items", response_model=CartOut)
async def add_to_cart(
    payload: CartItemAdd,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> CartOut:
    """Adds to the existing line for this product, if any."""
    product = await db.get(Product, payload.product_id)
    if product is None or not product.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    line = await _get_line(db, user.id, product.id)
    quantity = payload.quantity + (line.quantity if line else 0)
    _check_stock(product, quantity)

    if line is None:
        db.add(CartItem(user_id=user.id, product_id=product.id, quantity=quantity))
    else:
        line.quantity = quantity
    await db.commit()

    return await _cart_out(db, user.id)


@router.patch("/items/{product_id}", response_model=CartOut)
async def update_cart_item(
    product_id: uuid.UUID,
    payload: CartItemUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> CartOut:
    line = await _get_line(db, user.id, product_id)
    if line is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product is not in the cart")

    if payload.quantity == 0:
        await db.delete(line)
    else:
        product = await db.get(Product, product_id)
        _check_stock(product, payload.quantity)
        line.quantity = payload.quantity
    await db.commit()

    return await _cart_out(db, user.id)


@router.delete("/items/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_from_cart(
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    line = await _get_line(db, user.id, product_id)
    if line is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product is not in the cart")

    await db.delete(line)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def empty_cart(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    await clear_cart(db, user.id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
