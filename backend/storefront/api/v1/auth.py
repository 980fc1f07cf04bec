# backend/storefront/api/v1/auth.py
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps.access import (
    get_access_session,
    get_current_user,
    get_session_registry,
)
from storefront.core.config import settings
from storefront.core.security import create_access_token
from storefront.core.sessions import AccessSession, SessionRegistry
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.auth import MagicCodeRequest, MagicCodeVerify, MeResponse, ProfileUpdateRequest, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

MAGIC_CODE_EXPIRY_MINUTES = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns.
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _should_return_magic_code_in_response() -> bool:
    """
    Never echo the code in production; elsewhere honor the settings toggle.
    """
    if settings.is_production:
        return False
    return settings.RETURN_MAGIC_CODE_IN_RESPONSE


async def purge_expired_magic_codes(db: AsyncSession) -> None:
    """
    Clear all expired magic codes globally.
    """
    stmt = (
        update(User)
        .where(User.magic_code_expires_at.is_not(None))
        .where(User.magic_code_expires_at < _utcnow())
        .values(magic_code=None, magic_code_expires_at=None)
    )
    await db.execute(stmt)


@router.post("/request-code")
async def request_code(payload: MagicCodeRequest, db: AsyncSession = Depends(get_db)):
    """
    Body: {"email": "user@example.com"}
    Generates a magic code (stored on user record). Signing up and signing
    in are the same flow; a new user starts as a plain customer.
    """
    email = User.normalize_email(payload.email)

    await purge_expired_magic_codes(db)

    res = await db.execute(select(User).where(User.email == email))
    user = res.scalar_one_or_none()

    if user is None:
        user = User(email=email, is_active=True)
        db.add(user)
        await db.flush()

    code = str(secrets.randbelow(900000) + 100000)  # 6 digits
    user.magic_code = code
    user.magic_code_expires_at = _utcnow() + timedelta(minutes=MAGIC_CODE_EXPIRY_MINUTES)

    await db.commit()

    resp = {"status": "ok", "expires_in_minutes": MAGIC_CODE_EXPIRY_MINUTES}
    if _should_return_magic_code_in_response():
        resp["code"] = code
    return resp


@router.post("/verify-code", response_model=TokenResponse)
async def verify_code(
    payload: MagicCodeVerify,
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
) -> TokenResponse:
    """
    Body: {"email":"user@example.com","code":"123456"}
    Opens an access session (role resolution starts in the background)
    and returns a bearer token bound to it.
    """
    email = User.normalize_email(payload.email)
    code = payload.code.strip()

    if not code:
        raise HTTPException(status_code=400, detail="code is required")

    res = await db.execute(select(User).where(User.email == email))
    user = res.scalar_one_or_none()

    if not user or not user.magic_code or not user.magic_code_expires_at:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid code")

    if not secrets.compare_digest(user.magic_code, code):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid code")

    if _as_aware(user.magic_code_expires_at) < _utcnow():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Code expired")

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User inactive")

    # One-time use: clear after successful verification
    user.magic_code = None
    user.magic_code_expires_at = None
    await db.commit()

    session = registry.open(user.id)
    logger.info("Opened session for user %s", user.id)

    access_token = create_access_token(
        subject=str(user.id),
        session_id=session.session_id,
        expires_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
    )
    return TokenResponse(access_token=access_token)


@router.post("/sign-out", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    session: AccessSession = Depends(get_access_session),
    registry: SessionRegistry = Depends(get_session_registry),
) -> Response:
    registry.close(session.session_id)
    logger.info("Closed session for user %s", session.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _to_me_response(user: User) -> MeResponse:
    return MeResponse(
        id=str(user.id),
        email=user.email,
        is_active=user.is_active,
        full_name=user.full_name,
    )


@router.get("/me", response_model=MeResponse)
async def me(user: User = Depends(get_current_user)) -> MeResponse:
    return _to_me_response(user)


@router.patch("/me", response_model=MeResponse)
async def update_me(
    payload: ProfileUpdateRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MeResponse:
    data = payload.model_dump(exclude_unset=True)

    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided to update.")

    if "full_name" in data:
        user.full_name = User.normalize_full_name(data["full_name"])

    db.add(user)
    await db.commit()
    await db.refresh(user)

    return _to_me_response(user)
