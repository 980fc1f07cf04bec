from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr

from storefront.core.roles import AppRole


class StaffCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    role: AppRole = AppRole.PRODUCT_STAFF


class StaffRoleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: AppRole


class StaffOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    role: str
    label: str
    created_at: datetime
