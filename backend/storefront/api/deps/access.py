from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.access import AccessResolver
from storefront.core.roles import AppRole, has_permission, is_staff_role
from storefront.core.security import bearer_scheme, decode_access_token
from storefront.core.sessions import AccessSession, SessionEnded, SessionRegistry
from storefront.crud.user_role import SqlRoleGrantStore
from storefront.db.session import AsyncSessionLocal, get_db
from storefront.models.user import User

logger = logging.getLogger(__name__)

session_registry = SessionRegistry(AccessResolver(SqlRoleGrantStore(AsyncSessionLocal)))


def get_session_registry() -> SessionRegistry:
    return session_registry


@dataclass(frozen=True)
class AccessContext:
    user: User
    session: AccessSession
    role: AppRole
    degraded: bool = False


def _store_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={
            "code": "access_store_unavailable",
            "message": "Your access level could not be verified right now. Please retry.",
            "retryable": True,
        },
    )


async def get_access_session(
    credentials=Depends(bearer_scheme),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AccessSession:
    """
    Bearer token -> live access session. A token whose session was signed
    out, expired or lost in a restart is rejected.
    """
    claims = decode_access_token(credentials.credentials)

    session = registry.get(claims.sid)
    if session is None or str(session.user_id) != claims.sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired or signed out")
    return session


async def get_current_user(
    session: AccessSession = Depends(get_access_session),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency for protected endpoints.
    """
    user = await db.get(User, session.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    if not getattr(user, "is_active", True):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User inactive")

    return user


async def get_access_context(
    user: User = Depends(get_current_user),
    session: AccessSession = Depends(get_access_session),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AccessContext:
    """Waits for the session's role; only this request is suspended."""
    try:
        role = await registry.wait_resolved(session)
    except SessionEnded:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired or signed out")
    return AccessContext(user=user, session=session, role=role, degraded=session.degraded)


async def get_fresh_access_context(
    user: User = Depends(get_current_user),
    session: AccessSession = Depends(get_access_session),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AccessContext:
    """
    Re-derive the caller's role from the store, ignoring the session's
    cached value. Used in front of state-changing operations.
    """
    resolution = await registry.resolver.resolve(user.id)
    return AccessContext(user=user, session=session, role=resolution.role, degraded=resolution.degraded)


def require_staff(*, fresh: bool = False) -> Callable:
    source = get_fresh_access_context if fresh else get_access_context

    async def _checker(ctx: AccessContext = Depends(source)) -> AccessContext:
        if is_staff_role(ctx.role):
            return ctx
        if ctx.degraded:
            raise _store_unavailable()
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "rbac_staff_only", "message": "Staff access required."},
        )

    return _checker


def require_permissions(
    required: str | Sequence[str],
    *,
    any_of: bool = False,
    fresh: bool = False,
) -> Callable:
    """
    Enforce RBAC permissions against the caller's effective role.

    Args:
      required: permission string OR list of permissions
      any_of: True => any required perm passes; False => all required perms required
      fresh: True => re-derive the role from the store instead of the session
    """
    required_list = [required] if isinstance(required, str) else list(required)
    source = get_fresh_access_context if fresh else get_access_context

    async def _checker(ctx: AccessContext = Depends(source)) -> AccessContext:
        checks = [has_permission(ctx.role, p) for p in required_list]
        allowed = any(checks) if any_of else all(checks)

        if allowed:
            return ctx

        if ctx.degraded:
            raise _store_unavailable()

        missing = [p for p, ok in zip(required_list, checks) if not ok]
        logger.info("Denied %s for user %s (role=%s)", missing, ctx.user.id, ctx.role.value)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "rbac_forbidden",
                "message": "You do not have permission to perform this action.",
                "required": required_list,
                "missing": missing,
                "role": ctx.role.value,
            },
        )

    return _checker

