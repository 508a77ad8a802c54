"""Persistence model for the append-only audit log."""

from __future__ import annotations

import datetime as dt
import typing as typ
import uuid

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from commithabit.common.storage import Base, UTCDateTime
from commithabit.common.time import utcnow


class AuditLogEntry(Base):
    """One state-changing action, kept until the retention sweep removes it."""

    __tablename__ = "audit_log_entries"
    __table_args__ = (
        Index("ix_audit_log_created_id", "created_at", "id"),
        Index("ix_audit_log_action", "action"),
        Index("ix_audit_log_target_user", "target_user_id"),
        Index("ix_audit_log_entity", "entity_type", "entity_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    actor_type: Mapped[str] = mapped_column(String(16))
    actor_id: Mapped[str | None] = mapped_column(String(64), default=None)
    action: Mapped[str] = mapped_column(String(64))
    target_user_id: Mapped[str | None] = mapped_column(String(64), default=None)
    entity_type: Mapped[str | None] = mapped_column(String(32), default=None)
    entity_id: Mapped[str | None] = mapped_column(String(64), default=None)
    # ``metadata`` is reserved on declarative classes.
    details: Mapped[dict[str, typ.Any]] = mapped_column(
        "metadata", JSON, default=dict
    )


__all__ = ["AuditLogEntry"]
