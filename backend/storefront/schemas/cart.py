from __future__ import annotations

import uuid
from decimal import Decimal
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from storefront.schemas.product import ProductResponse


class CartItemAdd(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_id: uuid.UUID
    quantity: int = Field(default=1, ge=1, le=100)


class CartItemUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # 0 removes the line.
    quantity: int = Field(..., ge=0, le=100)


class CartLineOut(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    quantity: int
    line_total: Decimal
    product: ProductResponse


class CartOut(BaseModel):
    items: List[CartLineOut]
    item_count: int
    subtotal: Decimal
