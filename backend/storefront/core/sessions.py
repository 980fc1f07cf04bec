# backend/storefront/core/sessions.py
"""
Per-session role knowledge.

A session starts UNRESOLVED, moves to RESOLVING while its grants are being
fetched, and ends up RESOLVED with exactly one role (customer when the store
failed). It stays RESOLVED until sign-out or an explicit refresh; a role
change made by an administrator only shows up after one of those.

Sessions live in process memory. A restart drops them, so tokens issued
before the restart are rejected.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from storefront.core.access import AccessResolver
from storefront.core.config import settings
from storefront.core.roles import AppRole, has_permission, is_staff_role

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResolutionState(str, enum.Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


class SessionEnded(Exception):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} has ended")
        self.session_id = session_id


@dataclass(eq=False)
class AccessSession:
    session_id: str
    user_id: uuid.UUID
    expires_at: datetime
    state: ResolutionState = ResolutionState.UNRESOLVED
    role: Optional[AppRole] = None
    degraded: bool = False
    ended: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= _utcnow()


class SessionRegistry:
    def __init__(self, resolver: AccessResolver, ttl: Optional[timedelta] = None):
        self.resolver = resolver
        self.ttl = ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self._sessions: Dict[str, AccessSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def open(self, user_id: uuid.UUID) -> AccessSession:
        """Establish a session and kick off role resolution in the background."""
        self.prune()
        session = AccessSession(
            session_id=secrets.token_urlsafe(32),
            user_id=user_id,
            expires_at=_utcnow() + self.ttl,
        )
        self._sessions[session.session_id] = session
        self.start_resolution(session)
        return session

    def get(self, session_id: Optional[str]) -> Optional[AccessSession]:
        if not session_id:
            return None
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.is_expired:
            self.close(session_id)
            return None
        return session

    def close(self, session_id: str) -> bool:
        """
        End a session. An in-flight resolution is cancelled and anything it
        would have produced is dropped.
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.ended = True
        if session.task is not None and not session.task.done():
            session.task.cancel()
        return True

    def close_all(self) -> None:
        for sid in list(self._sessions):
            self.close(sid)

    def prune(self) -> int:
        expired = [sid for sid, s in self._sessions.items() if s.is_expired]
        for sid in expired:
            self.close(sid)
        return len(expired)

    # -----------------------------
    # Resolution
    # -----------------------------
    def start_resolution(self, session: AccessSession) -> asyncio.Task:
        if session.ended:
            raise SessionEnded(session.session_id)
        if session.task is not None and not session.task.done():
            return session.task
        return self._spawn(session)

    def refresh(self, session: AccessSession) -> asyncio.Task:
        """Re-resolve from the store, superseding any resolution in flight."""
        if session.ended:
            raise SessionEnded(session.session_id)
        if session.task is not None and not session.task.done():
            session.task.cancel()
        return self._spawn(session)

    async def wait_resolved(self, session: AccessSession) -> AppRole:
        """
        Suspend the caller until the session has a role. Cancelling the
        caller does not cancel the shared resolution.
        """
        while session.state is not ResolutionState.RESOLVED:
            if session.ended:
                raise SessionEnded(session.session_id)
            task = self.start_resolution(session)
            await asyncio.wait({task})
        if session.ended:
            raise SessionEnded(session.session_id)
        return session.role

    def _spawn(self, session: AccessSession) -> asyncio.Task:
        session.state = ResolutionState.RESOLVING
        session.role = None
        session.degraded = False
        task = asyncio.get_running_loop().create_task(self._resolve(session))
        session.task = task
        return task

    async def _resolve(self, session: AccessSession) -> None:
        try:
            resolution = await self.resolver.resolve(session.user_id)
        except Exception:
            logger.exception("Role resolution crashed for user %s; resolving as customer", session.user_id)
            role, degraded = AppRole.CUSTOMER, True
        else:
            role, degraded = resolution.role, resolution.degraded

        if session.ended or session.task is not asyncio.current_task():
            logger.debug("Discarding role resolution for stale session of user %s", session.user_id)
            return

        session.role = role
        session.degraded = degraded
        session.state = ResolutionState.RESOLVED

    # -----------------------------
    # Synchronous queries
    # -----------------------------
    @staticmethod
    def effective_role(session: Optional[AccessSession]) -> Optional[AppRole]:
        if session is None or session.ended or session.state is not ResolutionState.RESOLVED:
            return None
        return session.role

    @classmethod
    def is_staff(cls, session: Optional[AccessSession]) -> bool:
        return is_staff_role(cls.effective_role(session))

    @classmethod
    def has_permission(cls, session: Optional[AccessSession], permission: str) -> bool:
        return has_permission(cls.effective_role(session), permission)
