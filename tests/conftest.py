"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (auth, core_hr, attendance, leave, etc.).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from werkzeug.security import generate_password_hash

from attendease.common.constants import UserRole
from attendease.common.scoping import Viewer
from attendease.config import settings
from attendease.database import Base, get_db
from attendease.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import attendease.auth.models  # noqa: F401
import attendease.companies.models  # noqa: F401
import attendease.core_hr.models  # noqa: F401
import attendease.attendance.models  # noqa: F401
import attendease.leave.models  # noqa: F401
import attendease.common.audit  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT/BLOB ───────────

from sqlalchemy.dialects.postgresql import INET, JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(INET, "sqlite")
def _inet_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)

TEST_PASSWORD = "correct-horse-battery"
TEST_DOMAIN = "acme.io"


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from attendease.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

async def make_company(db, *, name: str = "Acme", domain: Optional[str] = TEST_DOMAIN):
    """Insert and commit a company."""
    from attendease.companies.models import Company

    company = Company(name=name, domain=domain)
    db.add(company)
    await db.commit()
    return company


async def make_profile(
    db,
    company,
    *,
    role: UserRole = UserRole.employee,
    name: Optional[str] = None,
    email: Optional[str] = None,
    department: Optional[str] = "Engineering",
    manager=None,
    is_active: bool = True,
    password: Optional[str] = TEST_PASSWORD,
):
    """Insert and commit a profile with a hashed password."""
    from attendease.core_hr.models import Profile

    suffix = uuid.uuid4().hex[:6]
    profile = Profile(
        company_id=company.id,
        email=email or f"{role.value}.{suffix}@{company.domain or TEST_DOMAIN}",
        name=name or f"{role.value.replace('_', ' ').title()} {suffix}",
        role=role,
        department=department,
        position="Staff",
        reporting_manager_id=manager.id if manager is not None else None,
        is_active=is_active,
        password_hash=generate_password_hash(password) if password else None,
    )
    db.add(profile)
    await db.commit()
    return profile


def viewer_for(profile, company_id: Optional[uuid.UUID] = None) -> Viewer:
    """Service-layer caller for *profile*; super-admins default to all companies."""
    if company_id is None and profile.role != UserRole.super_admin:
        company_id = profile.company_id
    return Viewer(
        id=profile.id,
        role=profile.role,
        company_id=company_id,
        home_company_id=profile.company_id,
    )


@pytest.fixture
async def company(db):
    return await make_company(db)


@pytest.fixture
async def employee(db, company):
    return await make_profile(db, company, role=UserRole.employee, name="Ada Employee")


@pytest.fixture
async def manager(db, company):
    return await make_profile(db, company, role=UserRole.reporting_manager, name="Mia Manager")


@pytest.fixture
async def admin(db, company):
    return await make_profile(db, company, role=UserRole.admin, name="Alan Admin")


@pytest.fixture
async def super_admin(db, company):
    return await make_profile(db, company, role=UserRole.super_admin, name="Sam Super")


@pytest.fixture
async def team_member(db, company, manager):
    """Employee reporting to ``manager``."""
    return await make_profile(db, company, role=UserRole.employee, name="Rita Report", manager=manager)


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    profile_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(profile_id),
        "role": role.value,
        "type": "access",
        "jti": uuid.uuid4().hex,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


async def auth_headers_for(db, profile, company_id: Optional[uuid.UUID] = None) -> dict[str, str]:
    """Return Bearer auth headers with a valid session persisted in the DB."""
    from attendease.auth.models import UserSession

    token = create_access_token(profile.id, role=profile.role)
    db.add(
        UserSession(
            id=uuid.uuid4(),
            profile_id=profile.id,
            token_hash=hashlib.sha256(token.encode()).hexdigest(),
            expires_at=datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS),
            is_revoked=False,
            created_at=datetime.now(timezone.utc),
        )
    )
    await db.commit()

    headers = {"Authorization": f"Bearer {token}"}
    if company_id is not None:
        headers["X-Company-Id"] = str(company_id)
    return headers
