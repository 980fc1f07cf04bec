from __future__ import annotations

import os

# Must be set before storefront.core.config is imported.
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RETURN_MAGIC_CODE_IN_RESPONSE", "true")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from storefront.api.deps.access import get_session_registry
from storefront.core.access import AccessResolver
from storefront.core.roles import AppRole
from storefront.core.security import decode_access_token
from storefront.core.sessions import SessionRegistry
from storefront.crud.user_role import SqlRoleGrantStore, upsert_role_grant
from storefront.db.session import get_db

# Ensure Base + models are registered before create_all
from storefront.db.base import Base
import storefront.models  # noqa: F401
from storefront.models.user import User


# ---------------------------------------------------------
# Database: one SQLite file per test
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def engine(tmp_path):
    """
    File-backed so the background role resolution gets its own connection
    instead of sharing (and resetting) the request's.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}",
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture()
def sessionmaker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db(sessionmaker):
    """
    Session for test setup & assertions ONLY.
    """
    async with sessionmaker() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------
# Access sessions
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def registry(sessionmaker):
    reg = SessionRegistry(AccessResolver(SqlRoleGrantStore(sessionmaker), timeout=5.0))
    yield reg
    reg.close_all()


# ---------------------------------------------------------
# FastAPI app + dependency overrides
# ---------------------------------------------------------
@pytest.fixture()
def app(sessionmaker, registry):
    from storefront.main import app as fastapi_app

    async def _override_get_db():
        async with sessionmaker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    fastapi_app.dependency_overrides[get_session_registry] = lambda: registry
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
async def create_user(db, email: str, role: AppRole | None = None, full_name: str | None = None) -> User:
    user = User(email=email.lower().strip(), full_name=full_name, is_active=True)
    db.add(user)
    await db.flush()
    if role is not None:
        await upsert_role_grant(db, user.id, role)
    await db.commit()
    return user


async def sign_in(client: AsyncClient, registry: SessionRegistry, email: str, *, wait: bool = True) -> dict:
    """
    Run the magic-code flow and return auth headers. With wait=True the
    session's role is resolved before returning.
    """
    r = await client.post("/api/v1/auth/request-code", json={"email": email})
    assert r.status_code == 200, r.text
    code = r.json()["code"]

    r = await client.post("/api/v1/auth/verify-code", json={"email": email, "code": code})
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]

    if wait:
        session = registry.get(decode_access_token(token).sid)
        await registry.wait_resolved(session)

    return {"Authorization": f"Bearer {token}"}
