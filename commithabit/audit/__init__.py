"""Audit trail for every state-changing action.

Entries are appended best-effort by the orchestrator, the webhook ingester
and the admin endpoints, queried by privileged callers, and removed by the
retention sweep once older than the configured window.
"""

from commithabit.audit.config import AuditConfig
from commithabit.audit.models import (
    ActorType,
    AuditAction,
    AuditEntry,
    AuditEntryCreate,
    AuditPage,
    AuditQuery,
    EntityType,
)
from commithabit.audit.service import AuditTrail

__all__ = [
    "ActorType",
    "AuditAction",
    "AuditConfig",
    "AuditEntry",
    "AuditEntryCreate",
    "AuditPage",
    "AuditQuery",
    "AuditTrail",
    "EntityType",
]
