from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentMethod = Literal["card", "bank_transfer", "cash_on_delivery"]


class OrderItemIn(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(..., ge=1, le=100)


class OrderCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Omitted: check out the caller's cart.
    items: Optional[List[OrderItemIn]] = Field(None, min_length=1)
    shipping_address: str = Field(..., min_length=5, max_length=1000)
    payment_method: PaymentMethod = "card"


class OrderStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: OrderStatus


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    product_name: str
    quantity: int
    unit_price: Decimal


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    status: str
    total_amount: Decimal
    currency: str
    shipping_address: Optional[str] = None
    payment_method: Optional[str] = None
    items: List[OrderItemOut] = []

    created_at: datetime
    updated_at: datetime


class CustomerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    is_active: bool
    created_at: datetime

    # Cancelled orders are left out of both.
    order_count: int = 0
    total_spent: Decimal = Decimal("0")


class TopProductOut(BaseModel):
    product_id: Optional[uuid.UUID] = None
    name: str
    quantity: int
    revenue: Decimal


class DailyRevenueOut(BaseModel):
    day: date
    orders: int
    revenue: Decimal


class AnalyticsOut(BaseModel):
    order_count: int
    revenue: Decimal
    average_order_value: Decimal
    orders_by_status: dict[str, int]
    product_count: int
    top_products: List[TopProductOut]
    revenue_by_date: List[DailyRevenueOut]
