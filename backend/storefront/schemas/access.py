from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from storefront.core.roles import AppRole
from storefront.core.sessions import ResolutionState


class AccessOut(BaseModel):
    state: ResolutionState
    role: Optional[AppRole] = None
    label: Optional[str] = None
    is_staff: bool
    permissions: List[str]
    # True when the role store failed and the session fell back to customer.
    degraded: bool = False


class RoleOut(BaseModel):
    role: AppRole
    label: str
    is_staff: bool
    rank: int
    permissions: List[str]


class DashboardSection(BaseModel):
    key: str
    label: str
    href: str
    permission: str
    description: str


class DashboardSummary(BaseModel):
    # None when the caller's role cannot see the underlying data.
    recent_orders: Optional[int] = None
    revenue: Optional[str] = None
    products: Optional[int] = None
    customers: Optional[int] = None


class DashboardOut(BaseModel):
    role: AppRole
    label: str
    permissions: List[str]
    sections: List[DashboardSection]
    summary: DashboardSummary
