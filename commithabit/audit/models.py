"""Value types for recording and querying audit entries."""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100


class ActorType(enum.StrEnum):
    """Who performed an audited action."""

    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"


class AuditAction(enum.StrEnum):
    """Actions written to the audit log."""

    COMMIT_CREATED = "commit.created"
    COMMIT_SKIPPED = "commit.skipped"
    COMMIT_FAILED = "commit.failed"
    INSTALLATION_CREATED = "installation.created"
    INSTALLATION_REACTIVATED = "installation.reactivated"
    INSTALLATION_REJECTED = "installation.rejected"
    INSTALLATION_DEACTIVATED = "installation.deactivated"
    INSTALLATION_SUSPENDED = "installation.suspended"
    INSTALLATION_RESUMED = "installation.resumed"
    INSTALLATION_PAUSED = "installation.paused"
    DAILY_RUN_COMPLETED = "daily_run.completed"
    AUDIT_PURGED = "audit.purged"


class EntityType(enum.StrEnum):
    """Kinds of entity an audit entry can point at."""

    INSTALLATION = "installation"
    DAILY_RUN = "daily_run"
    AUDIT_LOG = "audit_log"


@dataclasses.dataclass(frozen=True, slots=True)
class AuditEntryCreate:
    """An entry about to be appended.

    ``created_at`` defaults to the time of the append.
    """

    action: str
    actor_type: ActorType
    actor_id: str | None = None
    target_user_id: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    metadata: cabc.Mapping[str, typ.Any] = dataclasses.field(default_factory=dict)
    created_at: dt.datetime | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class AuditEntry:
    """A stored audit entry."""

    id: str
    created_at: dt.datetime
    actor_type: ActorType
    actor_id: str | None
    action: str
    target_user_id: str | None
    entity_type: str | None
    entity_id: str | None
    metadata: dict[str, typ.Any]

    def to_dict(self) -> dict[str, typ.Any]:
        """Return a JSON-ready representation."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "actor_type": self.actor_type.value,
            "actor_id": self.actor_id,
            "action": self.action,
            "target_user_id": self.target_user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "metadata": self.metadata,
        }


@dataclasses.dataclass(frozen=True, slots=True)
class AuditQuery:
    """Filters and pagination for :meth:`AuditTrail.query`.

    Attributes
    ----------
    actor_type
        Restrict to one actor type.
    action
        Restrict to a single action.
    actions
        Restrict to any of several actions; combined with ``action``.
    actor_id
        Restrict to one actor.
    target_user_id
        Restrict to entries about one user.
    entity_type, entity_id
        Restrict to one entity kind, or one specific entity.
    start, end
        Inclusive ``created_at`` bounds.
    limit
        Page size, 1 to ``MAX_PAGE_LIMIT``.
    cursor
        Opaque cursor returned by a previous page. Selects cursor mode.
    offset
        Row offset. Selects offset mode; cannot be combined with ``cursor``.

    """

    actor_type: ActorType | None = None
    action: str | None = None
    actions: tuple[str, ...] = ()
    actor_id: str | None = None
    target_user_id: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    start: dt.datetime | None = None
    end: dt.datetime | None = None
    limit: int = DEFAULT_PAGE_LIMIT
    cursor: str | None = None
    offset: int | None = None

    @property
    def action_set(self) -> frozenset[str]:
        """Return every action the query matches; empty means any."""
        combined = set(self.actions)
        if self.action is not None:
            combined.add(self.action)
        return frozenset(combined)


@dataclasses.dataclass(frozen=True, slots=True)
class AuditPage:
    """One page of query results with pagination metadata."""

    entries: tuple[AuditEntry, ...]
    total: int
    has_more: bool
    next_cursor: str | None

    def to_dict(self) -> dict[str, typ.Any]:
        """Return a JSON-ready representation."""
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "total": self.total,
            "has_more": self.has_more,
            "next_cursor": self.next_cursor,
        }
