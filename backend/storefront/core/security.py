from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import HTTPException, status
from fastapi.security import HTTPBearer
from jose import JWTError, jwt

from storefront.core.config import settings

bearer_scheme = HTTPBearer(auto_error=True)


@dataclass(frozen=True)
class TokenClaims:
    sub: str
    sid: Optional[str] = None


def _normalize_token(token: str) -> str:
    """
    Make token decoding resilient to common Swagger / copy-paste issues:
    - Leading/trailing whitespace/newlines
    - Surrounding quotes
    - Accidentally including the 'Bearer ' prefix in the token field
    """
    if token is None:
        return ""

    t = token.strip()

    if (t.startswith('"') and t.endswith('"')) or (t.startswith("'") and t.endswith("'")):
        t = t[1:-1].strip()

    if t.lower().startswith("bearer "):
        t = t[7:].strip()

    return t


def create_access_token(
    subject: str,
    session_id: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire_dt = now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    # Numeric timestamps for maximum compatibility
    to_encode: dict[str, Any] = {
        "sub": str(subject),
        "exp": int(expire_dt.timestamp()),
        "iat": int(now.timestamp()),
    }
    if session_id:
        to_encode["sid"] = session_id

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def decode_access_token(token: str) -> TokenClaims:
    token = _normalize_token(token)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError:
        # Expired signature, bad format, bad signature, wrong algorithm, etc.
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    sid = payload.get("sid")
    return TokenClaims(sub=str(sub), sid=str(sid) if sid else None)
