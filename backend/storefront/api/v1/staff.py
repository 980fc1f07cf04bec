# storefront/api/v1/staff.py
from __future__ import annotations

import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps.access import AccessContext, require_permissions
from storefront.core.roles import PERM, AppRole, assignable_roles, is_staff_role, label_of
from storefront.crud.user_role import (
    StaffGrant,
    downgrade_to_customer,
    get_role_grant,
    list_staff_grants,
    upsert_role_grant,
)
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.staff import StaffCreate, StaffOut, StaffRoleUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/staff", tags=["staff"])

# Every route here mutates or exposes grants; never trust the session's cached role.
manage_staff = require_permissions(PERM.MANAGE_STAFF, fresh=True)


def _to_staff_out(grant: StaffGrant) -> StaffOut:
    return StaffOut(
        user_id=grant.user_id,
        email=grant.email,
        full_name=grant.full_name,
        role=grant.role,
        label=label_of(AppRole(grant.role)),
        created_at=grant.created_at,
    )


def _check_assignable(role: AppRole) -> None:
    if role not in assignable_roles():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"role must be one of: {', '.join(r.value for r in assignable_roles())}",
        )


async def _staff_entry(db: AsyncSession, user: User) -> StaffOut:
    grant = await get_role_grant(db, user.id)
    await db.refresh(grant)
    return _to_staff_out(
        StaffGrant(
            user_id=user.id,
            role=grant.role,
            email=user.email,
            full_name=user.full_name,
            created_at=grant.created_at,
        )
    )


@router.get("", response_model=List[StaffOut])
async def list_staff(
    db: AsyncSession = Depends(get_db),
    _ctx: AccessContext = Depends(manage_staff),
):
    return [_to_staff_out(g) for g in await list_staff_grants(db)]


@router.post("", response_model=StaffOut, status_code=status.HTTP_201_CREATED)
async def add_staff(
    payload: StaffCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AccessContext = Depends(manage_staff),
):
    _check_assignable(payload.role)

    email = User.normalize_email(payload.email)
    user = (await db.execute(select(User).where(User.email == email).limit(1))).scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found. They must sign up first.")

    if user.id == ctx.user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot change your own role")

    await upsert_role_grant(db, user.id, payload.role)
    await db.commit()
    logger.info("User %s granted %s to user %s", ctx.user.id, payload.role.value, user.id)

    return await _staff_entry(db, user)


@router.patch("/{user_id}", response_model=StaffOut)
async def update_staff_role(
    user_id: uuid.UUID,
    payload: StaffRoleUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AccessContext = Depends(manage_staff),
):
    if user_id == ctx.user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot change your own role")
    if not is_staff_role(payload.role):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="role must be a staff role; remove the staff member to make them a customer",
        )

    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    await upsert_role_grant(db, user.id, payload.role)
    await db.commit()
    logger.info("User %s changed role of user %s to %s", ctx.user.id, user.id, payload.role.value)

    return await _staff_entry(db, user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_staff(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AccessContext = Depends(manage_staff),
):
    if user_id == ctx.user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot remove yourself")

    grant = await downgrade_to_customer(db, user_id)
    if grant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")

    await db.commit()
    logger.info("User %s downgraded user %s to customer", ctx.user.id, user_id)
    return None
