"""Auth service — email/password credentials, JWT management, session lifecycle."""

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from werkzeug.security import check_password_hash, generate_password_hash

from attendease.auth.models import PasswordResetToken, UserSession
from attendease.common.clock import utcnow
from attendease.common.constants import UserRole
from attendease.common.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenException,
    ValidationException,
)
from attendease.companies.models import Company
from attendease.config import settings
from attendease.core_hr.models import Profile

logger = logging.getLogger(__name__)


# ── Passwords ───────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: Optional[str], password: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ── Profile lookup ──────────────────────────────────────────────────

async def get_profile_by_email(db: AsyncSession, email: str) -> Optional[Profile]:
    """Return the profile for *email* (any status), or None."""
    result = await db.execute(
        select(Profile).where(func.lower(Profile.email) == normalize_email(email)),
    )
    return result.scalars().first()


async def authenticate(db: AsyncSession, email: str, password: str) -> Profile:
    """Verify email/password against an active profile."""
    profile = await get_profile_by_email(db, email)
    if profile is None or not profile.is_active or not verify_password(profile.password_hash, password):
        logger.info("Failed sign-in for %s", normalize_email(email))
        raise AuthenticationError("Invalid email or password.")
    return profile


async def sign_up(db: AsyncSession, *, name: str, email: str, password: str) -> Profile:
    """Self-service registration: an ``employee`` profile in the company owning the email domain."""
    email = normalize_email(email)
    if await get_profile_by_email(db, email) is not None:
        raise ConflictError("email", email)

    domain = email.rsplit("@", 1)[-1]
    company = (
        await db.execute(select(Company).where(func.lower(Company.domain) == domain))
    ).scalars().first()
    if company is None:
        raise ValidationException(
            {"email": [f"No company is registered for the domain '{domain}'."]}
        )

    profile = Profile(
        company_id=company.id,
        email=email,
        name=name.strip(),
        role=UserRole.employee,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.add(profile)
    await db.flush()
    logger.info("New sign-up %s in company %s", email, company.id)
    return profile


async def demo_login(db: AsyncSession, email: str) -> Profile:
    """Passwordless sign-in for local demos; disabled unless explicitly enabled."""
    if not settings.DEMO_LOGIN_ENABLED or settings.is_production:
        raise ForbiddenException("Demo login is disabled.")
    profile = await get_profile_by_email(db, email)
    if profile is None or not profile.is_active:
        raise AuthenticationError()
    logger.warning("Demo login used for %s", profile.email)
    return profile


# ── JWT helpers ─────────────────────────────────────────────────────

def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _create_access_token(profile_id: uuid.UUID, role: UserRole) -> tuple[str, int]:
    """Return (encoded_jwt, expires_in_seconds)."""
    expires_in = settings.JWT_EXPIRY_HOURS * 3600
    payload = {
        "sub": str(profile_id),
        "role": role.value,
        "type": "access",
        "jti": uuid.uuid4().hex,
        "exp": utcnow() + timedelta(hours=settings.JWT_EXPIRY_HOURS),
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, expires_in


def _create_refresh_token(profile_id: uuid.UUID) -> str:
    payload = {
        "sub": str(profile_id),
        "type": "refresh",
        "jti": uuid.uuid4().hex,  # two refreshes in the same second still differ
        "exp": utcnow() + timedelta(days=settings.REFRESH_EXPIRY_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# ── Session management ──────────────────────────────────────────────

async def create_session(
    db: AsyncSession,
    profile: Profile,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> tuple[str, str, int]:
    """Create JWT pair and persist session.  Returns (access, refresh, expires_in)."""
    access_token, expires_in = _create_access_token(profile.id, profile.role)
    refresh_token = _create_refresh_token(profile.id)

    session = UserSession(
        profile_id=profile.id,
        token_hash=hash_token(access_token),
        refresh_token_hash=hash_token(refresh_token),
        ip_address=ip,
        user_agent=user_agent,
        expires_at=utcnow() + timedelta(hours=settings.JWT_EXPIRY_HOURS),
    )
    db.add(session)
    await db.flush()

    return access_token, refresh_token, expires_in


# ── Refresh (with token rotation + reuse detection) ─────────────────

async def refresh_access_token(
    db: AsyncSession,
    refresh_token_str: str,
) -> tuple[str, str, int]:
    """Validate refresh token, rotate it, and issue new token pair.

    Returns (new_access_token, new_refresh_token, expires_in).

    Each refresh token can only be used once. If a previously used
    (revoked) refresh token is presented, all sessions for that user are
    revoked.
    """
    try:
        payload = jwt.decode(
            refresh_token_str,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        raise AuthenticationError("Invalid or expired refresh token.")

    if payload.get("type") != "refresh":
        raise AuthenticationError("Invalid token type.")

    result = await db.execute(
        select(UserSession).where(
            UserSession.refresh_token_hash == hash_token(refresh_token_str),
        ),
    )
    session = result.scalars().first()

    if session is None:
        raise AuthenticationError("Invalid refresh token.")

    if session.is_revoked:
        # A consumed refresh token was replayed
        await revoke_all_sessions(db, session.profile_id)
        await db.commit()  # Persist revocations before raising (avoid rollback)
        logger.warning("Refresh token reuse detected for profile %s", session.profile_id)
        raise AuthenticationError(
            "Refresh token reuse detected. All sessions revoked for security.",
        )

    session.is_revoked = True
    await db.flush()

    profile = await db.get(Profile, uuid.UUID(payload["sub"]))
    if profile is None or not profile.is_active:
        raise AuthenticationError("User account is inactive or not found.")

    access_token, new_refresh_token, expires_in = await create_session(
        db, profile, session.ip_address, session.user_agent,
    )
    return access_token, new_refresh_token, expires_in


# ── Revoke ──────────────────────────────────────────────────────────

async def revoke_all_sessions(
    db: AsyncSession,
    profile_id: uuid.UUID,
) -> None:
    """Revoke every active session of a profile."""
    result = await db.execute(
        select(UserSession).where(
            UserSession.profile_id == profile_id,
            UserSession.is_revoked.is_(False),
        ),
    )
    for session in result.scalars().all():
        session.is_revoked = True
    await db.flush()


async def revoke_session(db: AsyncSession, token_hash: str) -> None:
    """Mark a session as revoked by its access-token hash."""
    result = await db.execute(
        select(UserSession).where(UserSession.token_hash == token_hash),
    )
    session = result.scalars().first()
    if session:
        session.is_revoked = True
        await db.flush()


# ── Password reset ──────────────────────────────────────────────────

async def request_password_reset(db: AsyncSession, email: str) -> Optional[str]:
    """Issue a single-use reset token for an active account.

    Returns the raw token, or None when no active account matches (callers
    must not reveal which case occurred).
    """
    profile = await get_profile_by_email(db, email)
    if profile is None or not profile.is_active:
        return None

    token = secrets.token_urlsafe(32)
    db.add(
        PasswordResetToken(
            profile_id=profile.id,
            token_hash=hash_token(token),
            expires_at=utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRY_MINUTES),
        )
    )
    await db.flush()
    logger.info("Password reset issued for profile %s", profile.id)
    return token


async def reset_password(db: AsyncSession, token: str, new_password: str) -> Profile:
    """Consume a reset token, set the new password and revoke all sessions."""
    now = utcnow()
    result = await db.execute(
        select(PasswordResetToken).where(
            PasswordResetToken.token_hash == hash_token(token),
            PasswordResetToken.used_at.is_(None),
            PasswordResetToken.expires_at > now,
        ),
    )
    reset = result.scalars().first()
    if reset is None:
        raise ValidationException({"token": ["Reset link is invalid or has expired."]})

    profile = await db.get(Profile, reset.profile_id)
    if profile is None or not profile.is_active:
        raise ValidationException({"token": ["Reset link is invalid or has expired."]})

    profile.password_hash = hash_password(new_password)
    reset.used_at = now
    await revoke_all_sessions(db, profile.id)
    return profile
