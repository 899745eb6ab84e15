"""Company (tenant) ORM model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from attendease.common.clock import utcnow
from attendease.database import Base

if TYPE_CHECKING:
    from attendease.core_hr.models import Profile


class Company(Base):
    """Tenant boundary; every other entity carries a company reference."""

    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    # Email domain used to route self sign-ups to this tenant
    domain: Mapped[Optional[str]] = mapped_column(sa.String(255), unique=True)
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
    profiles: Mapped[list["Profile"]] = relationship(back_populates="company")

    def __repr__(self) -> str:
        return f"<Company {self.name}>"
