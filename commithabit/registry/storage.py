"""Persistence models for authorised repositories and webhook deliveries."""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import BigInteger, Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from commithabit.common.storage import Base, UTCDateTime
from commithabit.common.time import utcnow


class Installation(Base):
    """One repository a user authorised the GitHub App to commit to.

    Rows are deactivated, never deleted, so audit entries always resolve.
    """

    __tablename__ = "installations"
    __table_args__ = (
        UniqueConstraint(
            "installation_id", "repo_id", name="uq_installation_repository"
        ),
        Index("ix_installations_user_active", "user_id", "active"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    installation_id: Mapped[int] = mapped_column(BigInteger, index=True)
    repo_id: Mapped[int] = mapped_column(BigInteger)
    repo_full_name: Mapped[str] = mapped_column(String(255))
    user_id: Mapped[str] = mapped_column(String(64))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_commit_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class WebhookDelivery(Base):
    """Delivery ids already applied, used to make webhook replays no-ops."""

    __tablename__ = "webhook_deliveries"

    delivery_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    event: Mapped[str] = mapped_column(String(64))
    action: Mapped[str | None] = mapped_column(String(64), default=None)
    installation_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    outcome: Mapped[str] = mapped_column(String(32))
    received_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


__all__ = ["Installation", "WebhookDelivery"]
