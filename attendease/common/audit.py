"""Audit trail — who changed which profile, attendance row, leave request or setting.

Every mutating service call writes one ``AuditTrail`` row in the same
transaction as the change itself. Values are stored as JSON, so change
sets are normalised through :func:`json_safe` before they are persisted.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import INET, JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from attendease.database import Base


class AuditTrail(Base):
    """Append-only change log; rows are never updated or deleted by the API."""

    __tablename__ = "audit_trail"
    __table_args__ = (
        Index("ix_audit_trail_actor_id", "actor_id"),
        Index("ix_audit_trail_entity", "entity_type", "entity_id"),
        Index("ix_audit_trail_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"),
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    old_values: Mapped[Optional[dict]] = mapped_column(JSONB)
    new_values: Mapped[Optional[dict]] = mapped_column(JSONB)
    ip_address: Mapped[Optional[str]] = mapped_column(INET)
    user_agent: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()"),
    )

    def __repr__(self) -> str:
        return f"<AuditTrail {self.action} {self.entity_type}/{self.entity_id} by {self.actor_id}>"


# ── Value normalisation ─────────────────────────────────────────────

def _json_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return json_safe(value)
    if isinstance(value, (list, tuple, set)):
        return [_json_value(v) for v in value]
    return value


def json_safe(values: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Copy of *values* with UUIDs, enums and dates turned into JSON scalars."""
    if values is None:
        return None
    return {key: _json_value(value) for key, value in values.items()}


def changed_fields(
    obj: Any,
    changes: dict[str, Any],
    *,
    exclude: Iterable[str] = (),
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split *changes* into ``(old, new)`` for the keys that actually differ on *obj*."""
    skip = set(exclude)
    old: dict[str, Any] = {}
    new: dict[str, Any] = {}
    for key, value in changes.items():
        if key in skip:
            continue
        current = getattr(obj, key)
        if current != value:
            old[key] = current
            new[key] = value
    return old, new


# ── Writer ──────────────────────────────────────────────────────────

async def create_audit_entry(
    session: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = None,
    old_values: Optional[dict[str, Any]] = None,
    new_values: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditTrail:
    """
    Add and flush an audit-trail entry in the caller's transaction.

    Args:
        session: Async SQLAlchemy session.
        action: create | update | deactivate | approve | reject | mark | allocate | ...
        entity_type: "profile", "attendance", "leave_request", "company", ...
        entity_id: UUID of the affected row.
        actor_id: Profile performing the action (None for anonymous flows).
        old_values: State before the change; normalised with :func:`json_safe`.
        new_values: State after the change; normalised with :func:`json_safe`.
        ip_address: Client IP, when the caller has a request at hand.
        user_agent: Client user-agent string.
    """
    entry = AuditTrail(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=json_safe(old_values),
        new_values=json_safe(new_values),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(entry)
    await session.flush()
    return entry
