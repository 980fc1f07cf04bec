# backend/storefront/core/access.py
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Sequence

from storefront.core.config import settings
from storefront.core.roles import (
    AppRole,
    UnknownRole,
    has_permission,
    is_staff_role,
    parse_role,
    privilege_rank,
)

logger = logging.getLogger(__name__)


class StoreUnavailable(Exception):
    """The role-grant store could not be queried."""


class RoleGrantStore(Protocol):
    async def list_role_grants(self, user_id: uuid.UUID) -> Sequence[str]:
        """Raw role values of every grant held by user_id, in no particular order."""
        ...


@dataclass(frozen=True)
class Resolution:
    role: AppRole
    # True when the store failed and the role fell back to customer.
    degraded: bool = False


def pick_effective_role(raw_roles: Iterable[object], *, user_id: Optional[uuid.UUID] = None) -> AppRole:
    """
    Highest-privilege-wins over a user's grants.

    Unknown values are skipped (and logged), duplicates change nothing,
    and no grants at all means customer.
    """
    best = AppRole.CUSTOMER
    for raw in raw_roles:
        try:
            role = parse_role(raw)
        except UnknownRole:
            logger.warning("Ignoring unknown role grant %r for user %s", raw, user_id)
            continue
        if privilege_rank(role) > privilege_rank(best):
            best = role
    return best


class AccessResolver:
    def __init__(self, store: RoleGrantStore, timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout if timeout is not None else settings.ROLE_RESOLUTION_TIMEOUT_SECONDS

    async def resolve(self, user_id: uuid.UUID) -> Resolution:
        try:
            grants = await asyncio.wait_for(self.store.list_role_grants(user_id), timeout=self.timeout)
        except StoreUnavailable:
            logger.warning("Role grant store unavailable for user %s; resolving as customer", user_id, exc_info=True)
            return Resolution(role=AppRole.CUSTOMER, degraded=True)
        except asyncio.TimeoutError:
            logger.warning(
                "Role grant lookup for user %s exceeded %.1fs; resolving as customer",
                user_id,
                self.timeout,
            )
            return Resolution(role=AppRole.CUSTOMER, degraded=True)
        except Exception:
            # Any other store failure fails closed the same way.
            logger.exception("Role grant lookup failed for user %s; resolving as customer", user_id)
            return Resolution(role=AppRole.CUSTOMER, degraded=True)

        role = pick_effective_role(grants, user_id=user_id)
        logger.debug("Resolved user %s to role %s from %d grant(s)", user_id, role.value, len(grants))
        return Resolution(role=role)

    async def resolve_effective_role(self, user_id: uuid.UUID) -> AppRole:
        return (await self.resolve(user_id)).role

    @staticmethod
    def has_permission(role: AppRole | None, permission: str) -> bool:
        return has_permission(role, permission)

    @staticmethod
    def is_staff(role: AppRole | None) -> bool:
        return is_staff_role(role)
