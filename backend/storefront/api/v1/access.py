from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from storefront.api.deps.access import get_access_session, get_current_user, get_session_registry
from storefront.core.roles import AppRole, label_of, permissions_of, privilege_rank, staff_roles
from storefront.core.sessions import AccessSession, SessionEnded, SessionRegistry
from storefront.models.user import User
from storefront.schemas.access import AccessOut, RoleOut

router = APIRouter(prefix="/access", tags=["access"])


def _to_access_out(session: AccessSession, registry: SessionRegistry) -> AccessOut:
    role = registry.effective_role(session)
    return AccessOut(
        state=session.state,
        role=role,
        label=label_of(role) if role is not None else None,
        is_staff=registry.is_staff(session),
        permissions=sorted(permissions_of(role)) if role is not None else [],
        degraded=session.degraded,
    )


@router.get("/me", response_model=AccessOut)
async def my_access(
    _user: User = Depends(get_current_user),
    session: AccessSession = Depends(get_access_session),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AccessOut:
    """
    Snapshot of what the session knows right now. Does not wait: while the
    role is still resolving, role is null and nothing is permitted.
    """
    return _to_access_out(session, registry)


@router.post("/me/refresh", response_model=AccessOut)
async def refresh_my_access(
    _user: User = Depends(get_current_user),
    session: AccessSession = Depends(get_access_session),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AccessOut:
    """
    Re-resolve the session's role from the store (e.g. after an
    administrator changed it) and wait for the result.
    """
    try:
        registry.refresh(session)
        await registry.wait_resolved(session)
    except SessionEnded:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired or signed out")
    return _to_access_out(session, registry)


@router.get("/roles", response_model=List[RoleOut])
async def list_roles() -> List[RoleOut]:
    """Role catalog, lowest privilege first."""
    ordered = [AppRole.CUSTOMER, *staff_roles()]
    return [
        RoleOut(
            role=role,
            label=label_of(role),
            is_staff=role is not AppRole.CUSTOMER,
            rank=privilege_rank(role),
            permissions=sorted(permissions_of(role)),
        )
        for role in ordered
    ]
