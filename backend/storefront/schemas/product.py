from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=255, pattern=_SLUG_PATTERN)
    description: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    image_url: Optional[str] = Field(None, max_length=1024)

    price_amount: Decimal = Field(..., gt=0)
    price_currency: str = Field(default="USD", min_length=1, max_length=8)
    stock_quantity: int = Field(default=0, ge=0)


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    image_url: Optional[str] = Field(None, max_length=1024)

    price_amount: Optional[Decimal] = Field(None, gt=0)
    price_currency: Optional[str] = Field(None, min_length=1, max_length=8)
    stock_quantity: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None

    # Omit these to keep the current value; only the other fields can be cleared with null.
    @field_validator("name", "price_amount", "price_currency", "stock_quantity", "is_active")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class ProductResponse(ProductBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    is_active: bool
    created_by_user_id: Optional[uuid.UUID] = None

    created_at: datetime
    updated_at: datetime
