# storefront/crud/user_role.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.core.access import StoreUnavailable
from storefront.core.roles import AppRole, staff_roles
from storefront.models.user import User
from storefront.models.user_role import UserRole


@dataclass(frozen=True)
class StaffGrant:
    user_id: uuid.UUID
    role: str
    email: str
    full_name: Optional[str]
    created_at: datetime


async def list_role_grants(db: AsyncSession, user_id: uuid.UUID) -> List[str]:
    """
    Raw role values for every grant row of user_id.
    Values are returned as stored; validation is the resolver's job.
    """
    stmt = select(UserRole.role).where(UserRole.user_id == user_id)
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def get_role_grant(db: AsyncSession, user_id: uuid.UUID) -> Optional[UserRole]:
    stmt = select(UserRole).where(UserRole.user_id == user_id).limit(1)
    return (await db.execute(stmt)).scalar_one_or_none()


async def upsert_role_grant(db: AsyncSession, user_id: uuid.UUID, role: AppRole) -> UserRole:
    """
    Replace the user's grant with `role`, creating it if missing.
    Grants are one-to-one with users, so an update never stacks a second role.
    Caller commits.
    """
    grant = await get_role_grant(db, user_id)
    if grant is None:
        grant = UserRole(user_id=user_id, role=AppRole(role).value)
        db.add(grant)
    else:
        grant.role = AppRole(role).value
    await db.flush()
    return grant


async def downgrade_to_customer(db: AsyncSession, user_id: uuid.UUID) -> Optional[UserRole]:
    """
    "Remove" a staff member. The grant row is kept and set to customer.
    Returns None when the user holds no grant. Caller commits.
    """
    grant = await get_role_grant(db, user_id)
    if grant is None:
        return None
    grant.role = AppRole.CUSTOMER.value
    await db.flush()
    return grant


async def list_staff_grants(db: AsyncSession) -> List[StaffGrant]:
    stmt = (
        select(UserRole, User)
        .join(User, User.id == UserRole.user_id)
        .where(UserRole.role.in_([r.value for r in staff_roles()]))
        .order_by(UserRole.created_at.asc())
    )
    rows = (await db.execute(stmt)).all()
    return [
        StaffGrant(
            user_id=grant.user_id,
            role=grant.role,
            email=user.email,
            full_name=user.full_name,
            created_at=grant.created_at,
        )
        for grant, user in rows
    ]


class SqlRoleGrantStore:
    """
    RoleGrantStore backed by the user_roles table.
    Opens its own session because resolution outlives the request that
    started it.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self.sessionmaker = sessionmaker

    async def list_role_grants(self, user_id: uuid.UUID) -> Sequence[str]:
        try:
            async with self.sessionmaker() as db:
                return await list_role_grants(db, user_id)
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e
        except OSError as e:  # driver-level connection failures
            raise StoreUnavailable(str(e)) from e
