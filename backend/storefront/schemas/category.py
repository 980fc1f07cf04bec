from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.schemas.product import _SLUG_PATTERN


class CategoryCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=128)
    slug: str = Field(..., min_length=1, max_length=128, pattern=_SLUG_PATTERN)
    description: Optional[str] = None
    image_url: Optional[str] = Field(None, max_length=1024)


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=128)
    description: Optional[str] = None
    image_url: Optional[str] = Field(None, max_length=1024)

    @field_validator("name")
    @classmethod
    def reject_null_name(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime
