"""Core HR ORM models: Profile (employee identity + role), Team.

SQLAlchemy 2.0 async-compatible models with Mapped[] annotations.
Column names match the PostgreSQL schema defined in 001_initial_schema.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from attendease.common.clock import utcnow
from attendease.common.constants import UserRole
from attendease.database import Base

if TYPE_CHECKING:
    from attendease.auth.models import UserSession
    from attendease.companies.models import Company


# ═════════════════════════════════════════════════════════════════════
# Team
# ═════════════════════════════════════════════════════════════════════


class Team(Base):
    """Grouping of employees within a company, optionally led by a manager."""

    __tablename__ = "teams"
    __table_args__ = (
        sa.UniqueConstraint("company_id", "name", name="uq_team_company_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey(
            "profiles.id",
            name="fk_teams_manager_id",
            ondelete="SET NULL",
            use_alter=True,
        ),
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utcnow,
        server_default=sa.func.now(),
        onupdate=utcnow,
    )

    # Relationships
    manager: Mapped[Optional[Profile]] = relationship(foreign_keys=[manager_id])
    members: Mapped[list[Profile]] = relationship(
        back_populates="team",
        foreign_keys="Profile.team_id",
    )

    def __repr__(self) -> str:
        return f"<Team {self.name}>"


# ═════════════════════════════════════════════════════════════════════
# Profile
# ═════════════════════════════════════════════════════════════════════


class Profile(Base):
    """Employee identity, role, and organisational attributes.

    The profile doubles as the credential record: ``password_hash`` is set
    for accounts that sign in with email/password.
    """

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.employee,
        server_default=UserRole.employee.value,
    )
    department: Mapped[Optional[str]] = mapped_column(sa.String(100))
    position: Mapped[Optional[str]] = mapped_column(sa.String(100))
    hire_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE")
    )
    reporting_manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="SET NULL"),
        index=True,
    )
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("teams.id", ondelete="SET NULL"),
    )
    password_hash: Mapped[Optional[str]] = mapped_column(sa.String(255))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utcnow,
        server_default=sa.func.now(),
        onupdate=utcnow,
    )

    # ── Relationships ───────────────────────────────────────────────

    company: Mapped[Company] = relationship(back_populates="profiles")
    reporting_manager: Mapped[Optional[Profile]] = relationship(
        remote_side=[id],
        foreign_keys=[reporting_manager_id],
        back_populates="direct_reports",
    )
    direct_reports: Mapped[list[Profile]] = relationship(
        back_populates="reporting_manager",
        foreign_keys=[reporting_manager_id],
    )
    team: Mapped[Optional[Team]] = relationship(
        back_populates="members", foreign_keys=[team_id],
    )
    sessions: Mapped[list["UserSession"]] = relationship(
        back_populates="profile",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Profile {self.email} ({self.role.value})>"
