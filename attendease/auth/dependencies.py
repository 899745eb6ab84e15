"""Request authentication: bearer token → session → active ``Profile``.

Failures raise ``AuthenticationError`` (401) or ``ForbiddenException`` (403)
so they render as problem documents like every other error.
"""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.auth.models import UserSession
from attendease.auth.service import hash_token
from attendease.common.clock import utcnow
from attendease.common.constants import ROLE_RANK, UserRole
from attendease.common.exceptions import AuthenticationError, ForbiddenException
from attendease.config import settings
from attendease.core_hr.models import Profile
from attendease.database import get_db

BEARER_PREFIX = "Bearer "


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    if not header.startswith(BEARER_PREFIX) or len(header) == len(BEARER_PREFIX):
        raise AuthenticationError("Missing or invalid Authorization header.")
    return header[len(BEARER_PREFIX):]


def _decode_access_token(token: str) -> uuid.UUID:
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError("Token has expired.")
    except JWTError:
        raise AuthenticationError("Invalid token.")

    if claims.get("type") != "access":
        raise AuthenticationError("Invalid token type.")
    try:
        return uuid.UUID(claims["sub"])
    except (KeyError, ValueError):
        raise AuthenticationError("Invalid token.")


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """The signed-in profile.

    The token must belong to a live (unrevoked, unexpired) session. The
    role is taken from the profile row, not the token, so a role change
    applies on the next request.
    """
    token = _bearer_token(request)
    profile_id = _decode_access_token(token)
    token_hash = hash_token(token)

    live_session = (
        await db.execute(
            select(UserSession.id).where(
                UserSession.token_hash == token_hash,
                UserSession.profile_id == profile_id,
                UserSession.is_revoked.is_(False),
                UserSession.expires_at > utcnow(),
            ),
        )
    ).first()
    if live_session is None:
        raise AuthenticationError("Session invalid or expired.")

    profile = await db.get(Profile, profile_id)
    if profile is None or not profile.is_active:
        raise AuthenticationError("User account is inactive or not found.")

    # logout revokes the session this token belongs to
    request.state.access_token_hash = token_hash
    return profile


# ── Role gate ───────────────────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Dependency admitting the lowest of *allowed_roles* and everything above it."""
    floor = min(ROLE_RANK[role] for role in allowed_roles)

    async def _check(profile: Profile = Depends(get_current_user)) -> Profile:
        if ROLE_RANK[profile.role] < floor:
            raise ForbiddenException(
                detail=f"Role '{profile.role.value}' is not permitted. "
                f"Required: {[r.value for r in allowed_roles]}.",
            )
        return profile

    return _check
