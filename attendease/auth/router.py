"""Auth router — sign-in/up, token refresh, logout, password reset, current user."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.auth.dependencies import get_current_user
from attendease.auth.schemas import (
    DemoLoginRequest,
    MeResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    PasswordResetResponse,
    RefreshRequest,
    RefreshResponse,
    SignInRequest,
    SignUpRequest,
    TokenResponse,
    UserInfo,
)
from attendease.auth.service import (
    authenticate,
    create_session,
    demo_login,
    refresh_access_token,
    request_password_reset,
    reset_password,
    revoke_session,
    sign_up,
)
from attendease.common.audit import create_audit_entry
from attendease.common.constants import PERMISSIONS
from attendease.common.rate_limit import CREDENTIAL_LIMIT, limiter
from attendease.companies.models import Company
from attendease.config import settings
from attendease.core_hr.models import Profile
from attendease.database import get_db

router = APIRouter(prefix="", tags=["auth"])

_RESET_MESSAGE = "If an account exists for that email, a reset link has been issued."


def _client_meta(request: Request) -> tuple[Optional[str], Optional[str]]:
    ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")


async def _token_response(
    db: AsyncSession,
    request: Request,
    profile: Profile,
    action: str,
) -> TokenResponse:
    """Open a session for *profile* and record the sign-in."""
    ip, user_agent = _client_meta(request)
    access_token, refresh_token, expires_in = await create_session(db, profile, ip, user_agent)

    await create_audit_entry(
        db,
        action=action,
        entity_type="user_session",
        entity_id=profile.id,
        actor_id=profile.id,
        new_values={"ip": ip, "user_agent": user_agent},
        ip_address=ip,
        user_agent=user_agent,
    )

    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        user=UserInfo(
            id=profile.id,
            email=profile.email,
            name=profile.name,
            role=profile.role.value,
            company_id=profile.company_id,
            department=profile.department,
            position=profile.position,
        ),
    )


# ── POST /sign-in ───────────────────────────────────────────────────

@router.post("/sign-in", response_model=TokenResponse)
@limiter.limit(CREDENTIAL_LIMIT)
async def sign_in(
    request: Request,
    body: SignInRequest,
    db: AsyncSession = Depends(get_db),
):
    profile = await authenticate(db, body.email, body.password)
    return await _token_response(db, request, profile, "login")


# ── POST /sign-up ───────────────────────────────────────────────────

@router.post("/sign-up", response_model=TokenResponse, status_code=201)
@limiter.limit(CREDENTIAL_LIMIT)
async def register(
    request: Request,
    body: SignUpRequest,
    db: AsyncSession = Depends(get_db),
):
    profile = await sign_up(db, name=body.name, email=body.email, password=body.password)
    return await _token_response(db, request, profile, "sign_up")


# ── POST /demo-login ────────────────────────────────────────────────

@router.post("/demo-login", response_model=TokenResponse)
@limiter.limit(CREDENTIAL_LIMIT)
async def demo_sign_in(
    request: Request,
    body: DemoLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """Development-only passwordless sign-in (``DEMO_LOGIN_ENABLED``)."""
    profile = await demo_login(db, body.email)
    return await _token_response(db, request, profile, "demo_login")


# ── POST /refresh — Rotate token pair ──────────────────────────────

@router.post("/refresh", response_model=RefreshResponse)
async def refresh_token(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    new_access, new_refresh, expires_in = await refresh_access_token(db, body.refresh_token)
    return RefreshResponse(
        access_token=new_access,
        refresh_token=new_refresh,
        expires_in=expires_in,
    )


# ── POST /logout — Revoke current session ──────────────────────────

@router.post("/logout")
async def logout(
    request: Request,
    profile: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await revoke_session(db, request.state.access_token_hash)

    ip, user_agent = _client_meta(request)
    await create_audit_entry(
        db,
        action="logout",
        entity_type="user_session",
        entity_id=profile.id,
        actor_id=profile.id,
        ip_address=ip,
        user_agent=user_agent,
    )

    return {"message": "Logged out successfully"}


# ── POST /password-reset/request ────────────────────────────────────

@router.post("/password-reset/request", response_model=PasswordResetResponse)
@limiter.limit(CREDENTIAL_LIMIT)
async def password_reset_request(
    request: Request,
    body: PasswordResetRequest,
    db: AsyncSession = Depends(get_db),
):
    """Always answers the same way so account existence is not disclosed."""
    token = await request_password_reset(db, body.email)
    return PasswordResetResponse(
        message=_RESET_MESSAGE,
        reset_token=None if settings.is_production else token,
    )


# ── POST /password-reset/confirm ────────────────────────────────────

@router.post("/password-reset/confirm")
async def password_reset_confirm(
    body: PasswordResetConfirm,
    db: AsyncSession = Depends(get_db),
):
    profile = await reset_password(db, body.token, body.new_password)
    await create_audit_entry(
        db,
        action="password_reset",
        entity_type="profile",
        entity_id=profile.id,
        actor_id=profile.id,
    )
    return {"message": "Password updated. Please sign in again."}


# ── GET /me — Current user profile ─────────────────────────────────

@router.get("/me", response_model=MeResponse)
async def me(
    profile: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(func.count()).select_from(Profile).where(
            Profile.reporting_manager_id == profile.id,
            Profile.is_active.is_(True),
        ),
    )
    direct_reports_count = result.scalar() or 0
    company = await db.get(Company, profile.company_id)

    return MeResponse(
        id=profile.id,
        email=profile.email,
        name=profile.name,
        role=profile.role.value,
        permissions=PERMISSIONS.get(profile.role, []),
        company_id=profile.company_id,
        company_name=company.name if company else None,
        department=profile.department,
        position=profile.position,
        reporting_manager_id=profile.reporting_manager_id,
        team_id=profile.team_id,
        direct_reports_count=direct_reports_count,
    )
