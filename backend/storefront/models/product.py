from __future__ import annotations

import uuid
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.sql import func

from storefront.db.base import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    created_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    category_id = Column(Uuid, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    image_url = Column(String(1024), nullable=True)

    price_amount = Column(Numeric(12, 2), nullable=False)
    price_currency = Column(String(8), nullable=False, default="USD")
    stock_quantity = Column(Integer, nullable=False, default=0)

    # Archived products stay referenced by past orders.
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
