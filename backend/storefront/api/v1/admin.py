from __future__ import annotations

from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps.access import AccessContext, require_permissions, require_staff
from storefront.core.roles import PERM, AppRole, has_permission, label_of, permissions_of
from storefront.db.session import get_db
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product
from storefront.models.user import User
from storefront.models.user_role import UserRole
from storefront.schemas.access import DashboardOut, DashboardSection, DashboardSummary
from storefront.schemas.order import AnalyticsOut, CustomerOut, DailyRevenueOut, TopProductOut

router = APIRouter(prefix="/admin", tags=["admin"])

DASHBOARD_SECTIONS: List[DashboardSection] = [
    DashboardSection(
        key="analytics",
        label="Analytics",
        href="/admin/analytics",
        permission=PERM.VIEW_ANALYTICS,
        description="View store performance",
    ),
    DashboardSection(
        key="orders",
        label="Orders",
        href="/admin/orders",
        permission=PERM.VIEW_ALL_ORDERS,
        description="Manage all orders",
    ),
    DashboardSection(
        key="customers",
        label="Customers",
        href="/admin/customers",
        permission=PERM.VIEW_CUSTOMERS,
        description="View customer details",
    ),
    DashboardSection(
        key="products",
        label="Products",
        href="/admin/products",
        permission=PERM.MANAGE_PRODUCTS,
        description="Manage products",
    ),
    DashboardSection(
        key="staff",
        label="Staff",
        href="/admin/staff",
        permission=PERM.MANAGE_STAFF,
        description="Manage team members",
    ),
]

RECENT_ORDERS_WINDOW = 10
TOP_PRODUCTS_LIMIT = 5
CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def _counted():
    # Cancelled orders never count toward revenue or spend.
    return Order.status != "cancelled"


def _customers_stmt():
    # Users without a grant, or whose grant is customer.
    return (
        select(User)
        .outerjoin(UserRole, UserRole.user_id == User.id)
        .where(or_(UserRole.id.is_(None), UserRole.role == AppRole.CUSTOMER.value))
    )


async def _revenue(db: AsyncSession) -> Decimal:
    stmt = select(func.coalesce(func.sum(Order.total_amount), 0)).where(_counted())
    return _money((await db.execute(stmt)).scalar())


@router.get("/dashboard", response_model=DashboardOut)
async def dashboard(
    db: AsyncSession = Depends(get_db),
    ctx: AccessContext = Depends(require_staff()),
) -> DashboardOut:
    """
    Landing page of the back office. Sections and counters are limited to
    what the caller's role may see.
    """
    role = ctx.role
    summary = DashboardSummary()

    if has_permission(role, PERM.VIEW_ALL_ORDERS):
        recent = (
            select(Order.id).order_by(Order.created_at.desc()).limit(RECENT_ORDERS_WINDOW).subquery()
        )
        summary.recent_orders = int((await db.execute(select(func.count()).select_from(recent))).scalar() or 0)

    if has_permission(role, PERM.VIEW_FINANCIAL_REPORTS):
        summary.revenue = str(await _revenue(db))

    if has_permission(role, PERM.MANAGE_PRODUCTS):
        summary.products = int((await db.execute(select(func.count(Product.id)))).scalar() or 0)

    if has_permission(role, PERM.VIEW_CUSTOMERS):
        stmt = select(func.count()).select_from(_customers_stmt().subquery())
        summary.customers = int((await db.execute(stmt)).scalar() or 0)

    return DashboardOut(
        role=role,
        label=label_of(role),
        permissions=sorted(permissions_of(role)),
        sections=[s for s in DASHBOARD_SECTIONS if has_permission(role, s.permission)],
        summary=summary,
    )


@router.get("/customers", response_model=List[CustomerOut])
async def list_customers(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _ctx: AccessContext = Depends(require_permissions(PERM.VIEW_CUSTOMERS)),
) -> List[CustomerOut]:
    spend = (
        select(
            Order.user_id.label("user_id"),
            func.count(Order.id).label("order_count"),
            func.sum(Order.total_amount).label("total_spent"),
        )
        .where(_counted())
        .group_by(Order.user_id)
        .subquery()
    )
    stmt = (
        _customers_stmt()
        .outerjoin(spend, spend.c.user_id == User.id)
        .add_columns(spend.c.order_count, spend.c.total_spent)
        .order_by(User.created_at.desc(), User.email)
        .limit(limit)
        .offset(offset)
    )
    rows = (await db.execute(stmt)).all()
    return [
        CustomerOut(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            is_active=user.is_active,
            created_at=user.created_at,
            order_count=int(order_count or 0),
            total_spent=_money(total_spent),
        )
        for user, order_count, total_spent in rows
    ]


@router.get("/analytics", response_model=AnalyticsOut)
async def analytics(
    db: AsyncSession = Depends(get_db),
    _ctx: AccessContext = Depends(require_permissions(PERM.VIEW_ANALYTICS)),
) -> AnalyticsOut:
    rows = (await db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))).all()
    by_status = {status: int(count) for status, count in rows}

    product_count = int((await db.execute(select(func.count(Product.id)))).scalar() or 0)

    revenue = await _revenue(db)
    counted = int((await db.execute(select(func.count(Order.id)).where(_counted()))).scalar() or 0)
    average = (revenue / counted).quantize(CENT) if counted else _money(0)

    sold = func.sum(OrderItem.quantity).label("quantity")
    top_stmt = (
        select(
            OrderItem.product_id,
            OrderItem.product_name,
            sold,
            func.sum(OrderItem.quantity * OrderItem.unit_price).label("revenue"),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .where(_counted())
        .group_by(OrderItem.product_id, OrderItem.product_name)
        .order_by(sold.desc(), OrderItem.product_name)
        .limit(TOP_PRODUCTS_LIMIT)
    )
    top_products = [
        TopProductOut(product_id=product_id, name=name, quantity=int(quantity), revenue=_money(line_revenue))
        for product_id, name, quantity, line_revenue in (await db.execute(top_stmt)).all()
    ]

    day = func.date(Order.created_at)
    daily_stmt = (
        select(day, func.count(Order.id), func.sum(Order.total_amount))
        .where(_counted())
        .group_by(day)
        .order_by(day)
    )
    revenue_by_date = [
        DailyRevenueOut(day=d, orders=int(n), revenue=_money(total))
        for d, n, total in (await db.execute(daily_stmt)).all()
    ]

    return AnalyticsOut(
        order_count=sum(by_status.values()),
        revenue=revenue,
        average_order_value=average,
        orders_by_status=by_status,
        product_count=product_count,
        top_products=top_products,
        revenue_by_date=revenue_by_date,
    )
