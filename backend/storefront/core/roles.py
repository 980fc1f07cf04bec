# storefront/core/roles.py
from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from typing import FrozenSet, Mapping, Tuple


class AppRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"  # owns staff management
    ADMIN = "admin"  # store manager
    PRODUCT_STAFF = "product_staff"
    ORDER_FULFILLMENT = "order_fulfillment"
    CUSTOMER_SUPPORT = "customer_support"
    FINANCE = "finance"
    MARKETING = "marketing"
    CUSTOMER = "customer"  # default, not staff


class UnknownRole(ValueError):
    """A role value from outside the closed AppRole set."""

    def __init__(self, value: object):
        super().__init__(f"Unknown role: {value!r}")
        self.value = value


@dataclass(frozen=True)
class Permission:
    MANAGE_STAFF: str = "manage_staff"
    VIEW_ANALYTICS: str = "view_analytics"
    MANAGE_PRODUCTS: str = "manage_products"
    MANAGE_CATEGORIES: str = "manage_categories"
    VIEW_ALL_ORDERS: str = "view_all_orders"
    UPDATE_ORDERS: str = "update_orders"
    VIEW_CUSTOMERS: str = "view_customers"
    MANAGE_SETTINGS: str = "manage_settings"
    VIEW_FINANCIAL_REPORTS: str = "view_financial_reports"
    MANAGE_MARKETING: str = "manage_marketing"


PERM = Permission()

ROLE_LABELS: Mapping[AppRole, str] = {
    AppRole.SUPER_ADMIN: "Super Admin",
    AppRole.ADMIN: "Store Manager",
    AppRole.PRODUCT_STAFF: "Product Staff",
    AppRole.ORDER_FULFILLMENT: "Order Fulfillment",
    AppRole.CUSTOMER_SUPPORT: "Customer Support",
    AppRole.FINANCE: "Finance / Accounting",
    AppRole.MARKETING: "Marketing Staff",
    AppRole.CUSTOMER: "Customer",
}

ROLE_PERMISSIONS: Mapping[AppRole, FrozenSet[str]] = {
    AppRole.SUPER_ADMIN: frozenset(
        {
            PERM.MANAGE_STAFF,
            PERM.VIEW_ANALYTICS,
            PERM.MANAGE_PRODUCTS,
            PERM.MANAGE_CATEGORIES,
            PERM.VIEW_ALL_ORDERS,
            PERM.UPDATE_ORDERS,
            PERM.VIEW_CUSTOMERS,
            PERM.MANAGE_SETTINGS,
            PERM.VIEW_FINANCIAL_REPORTS,
            PERM.MANAGE_MARKETING,
        }
    ),
    AppRole.ADMIN: frozenset(
        {
            PERM.VIEW_ANALYTICS,
            PERM.MANAGE_PRODUCTS,
            PERM.MANAGE_CATEGORIES,
            PERM.VIEW_ALL_ORDERS,
            PERM.UPDATE_ORDERS,
            PERM.VIEW_CUSTOMERS,
            PERM.VIEW_FINANCIAL_REPORTS,
            PERM.MANAGE_MARKETING,
        }
    ),
    AppRole.PRODUCT_STAFF: frozenset({PERM.MANAGE_PRODUCTS, PERM.MANAGE_CATEGORIES}),
    AppRole.ORDER_FULFILLMENT: frozenset({PERM.VIEW_ALL_ORDERS, PERM.UPDATE_ORDERS}),
    AppRole.CUSTOMER_SUPPORT: frozenset({PERM.VIEW_ALL_ORDERS, PERM.VIEW_CUSTOMERS}),
    AppRole.FINANCE: frozenset(
        {
            PERM.VIEW_ALL_ORDERS,
            PERM.VIEW_FINANCIAL_REPORTS,
            PERM.VIEW_ANALYTICS,
        }
    ),
    AppRole.MARKETING: frozenset(
        {
            PERM.MANAGE_PRODUCTS,
            PERM.MANAGE_MARKETING,
            PERM.VIEW_ANALYTICS,
        }
    ),
    AppRole.CUSTOMER: frozenset(),
}

# Every token any role can grant.
PERMISSIONS: FrozenSet[str] = frozenset(asdict(PERM).values())

# Ascending privilege: a later position outranks an earlier one.
STAFF_ROLES: Tuple[AppRole, ...] = (
    AppRole.MARKETING,
    AppRole.FINANCE,
    AppRole.CUSTOMER_SUPPORT,
    AppRole.ORDER_FULFILLMENT,
    AppRole.PRODUCT_STAFF,
    AppRole.ADMIN,
    AppRole.SUPER_ADMIN,
)

_RANKS: Mapping[AppRole, int] = {role: idx for idx, role in enumerate(STAFF_ROLES)}


def parse_role(value: object) -> AppRole:
    """
    Validate a raw role value (e.g. a store column) against the closed set.
    Raises UnknownRole for anything else, including case variants.
    """
    if isinstance(value, AppRole):
        return value
    try:
        return AppRole(value)
    except ValueError:
        raise UnknownRole(value) from None


def label_of(role: AppRole) -> str:
    return ROLE_LABELS[parse_role(role)]


def permissions_of(role: AppRole) -> FrozenSet[str]:
    return ROLE_PERMISSIONS[parse_role(role)]


def staff_roles() -> Tuple[AppRole, ...]:
    return STAFF_ROLES


def assignable_roles() -> Tuple[AppRole, ...]:
    """Roles an administrator may hand out when adding a staff member."""
    return tuple(r for r in STAFF_ROLES if r is not AppRole.SUPER_ADMIN)


def privilege_rank(role: AppRole) -> int:
    """Index in STAFF_ROLES; customer ranks -1."""
    return _RANKS.get(parse_role(role), -1)


def has_permission(role: AppRole | str | None, permission: str) -> bool:
    if role is None:
        return False
    try:
        r = parse_role(role)
    except UnknownRole:
        return False
    return permission in ROLE_PERMISSIONS[r]


def is_staff_role(role: AppRole | str | None) -> bool:
    if role is None:
        return False
    try:
        return parse_role(role) in _RANKS
    except UnknownRole:
        return False
