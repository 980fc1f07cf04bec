from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps.access import AccessContext, get_current_user, require_permissions
from storefront.api.v1.cart import cart_lines, clear_cart
from storefront.core.roles import PERM
from storefront.db.session import get_db
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.order import OrderCreate, OrderOut, OrderStatus, OrderStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])
admin_router = APIRouter(prefix="/admin/orders", tags=["admin"])


# ---------------------------------------------------------
# Customer
# ---------------------------------------------------------
@router.get("", response_model=List[OrderOut])
async def list_my_orders(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    stmt = select(Order).where(Order.user_id == user.id).order_by(Order.created_at.desc())
    res = await db.execute(stmt)
    return list(res.scalars().all())


@router.get("/{order_id}", response_model=OrderOut)
async def get_my_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Receipt view. Other users' orders are reported as missing."""
    order = await db.get(Order, order_id)
    if order is None or order.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
async def place_order(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Checkout. Without `items` the caller's cart is ordered and emptied.
    Prices are taken from the catalog, not from the client, and stock is
    decremented in the same transaction.
    """
    from_cart = payload.items is None
    quantities: dict[uuid.UUID, int] = {}
    if from_cart:
        for line, _product in await cart_lines(db, user.id):
            quantities[line.product_id] = line.quantity
        if not quantities:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cart is empty")
    else:
        for line in payload.items:
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity

    stmt = select(Product).where(Product.id.in_(list(quantities))).with_for_update()
    products = {p.id: p for p in (await db.execute(stmt)).scalars().all()}

    currency: Optional[str] = None
    total = Decimal("0")
    items: List[OrderItem] = []
    for product_id, qty in quantities.items():
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Product {product_id} is not available")
        if product.stock_quantity < qty:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"error": "INSUFFICIENT_STOCK", "product_id": str(product_id), "available": product.stock_quantity},
            )
        if currency is None:
            currency = product.price_currency
        elif currency != product.price_currency:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="All items must share one currency")

        product.stock_quantity -= qty
        total += Decimal(product.price_amount) * qty
        items.append(
            OrderItem(product_id=product.id, product_name=product.name, quantity=qty, unit_price=product.price_amount)
        )

    order = Order(
        user_id=user.id,
        status="pending",
        total_amount=total,
        currency=currency or "USD",
        shipping_address=payload.shipping_address,
        payment_method=payload.payment_method,
        items=items,
    )
    db.add(order)
    if from_cart:
        await clear_cart(db, user.id)
    await db.commit()
    await db.refresh(order)
    logger.info("User %s placed order %s (%s %s)", user.id, order.id, order.total_amount, order.currency)
    return order


# ---------------------------------------------------------
# Back office
# ---------------------------------------------------------
@admin_router.get("", response_model=List[OrderOut])
async def list_all_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _ctx: AccessContext = Depends(require_permissions(PERM.VIEW_ALL_ORDERS)),
):
    stmt = select(Order)
    if status_filter:
        stmt = stmt.where(Order.status == status_filter)
    stmt = stmt.order_by(Order.created_at.desc()).limit(limit).offset(offset)
    res = await db.execute(stmt)
    return list(res.scalars().all())


@admin_router.patch("/{order_id}", response_model=OrderOut)
async def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AccessContext = Depends(require_permissions(PERM.UPDATE_ORDERS, fresh=True)),
):
    order = await db.get(Order, order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    order.status = payload.status
    await db.commit()
    await db.refresh(order)
    logger.info("User %s set order %s to %s", ctx.user.id, order.id, order.status)
    return order
