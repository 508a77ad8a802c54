"""Append-only audit trail with filtered, paginated queries.

Usage
-----
Record an action::

    from commithabit.audit import ActorType, AuditAction, AuditEntryCreate

    await trail.record(
        AuditEntryCreate(
            action=AuditAction.COMMIT_CREATED,
            actor_type=ActorType.SYSTEM,
            entity_type="installation",
            entity_id=installation.id,
        )
    )

Walk every commit failure, newest first::

    page = await trail.query(AuditQuery(action=AuditAction.COMMIT_FAILED))
    while page.has_more:
        page = await trail.query(
            AuditQuery(action=AuditAction.COMMIT_FAILED, cursor=page.next_cursor)
        )

"""

from __future__ import annotations

import typing as typ

from sqlalchemy import and_, delete, func, or_, select

from commithabit.audit.config import AuditConfig
from commithabit.audit.cursor import decode_cursor, encode_cursor
from commithabit.audit.models import (
    MAX_PAGE_LIMIT,
    ActorType,
    AuditAction,
    AuditEntry,
    AuditEntryCreate,
    AuditPage,
    AuditQuery,
    EntityType,
)
from commithabit.audit.storage import AuditLogEntry
from commithabit.common.time import utcnow
from commithabit.errors import ValidationError, translate_storage_errors
from commithabit.logging import (
    format_log_message,
    get_logger,
    log_exception,
    log_info,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

type SessionFactory = async_sessionmaker[AsyncSession]

logger = get_logger(__name__)


def _to_entry(row: AuditLogEntry) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        created_at=row.created_at,
        actor_type=ActorType(row.actor_type),
        actor_id=row.actor_id,
        action=row.action,
        target_user_id=row.target_user_id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        metadata=dict(row.details or {}),
    )


def _validate_page(query: AuditQuery) -> None:
    if not 1 <= query.limit <= MAX_PAGE_LIMIT:
        raise ValidationError.invalid_input(
            f"must be between 1 and {MAX_PAGE_LIMIT}", field="limit"
        )
    if query.offset is not None and query.offset < 0:
        raise ValidationError.invalid_input("must be non-negative", field="offset")
    if query.offset is not None and query.cursor is not None:
        raise ValidationError.invalid_input(
            "cannot be combined with offset", field="cursor"
        )
    if query.start is not None and query.end is not None and query.start > query.end:
        raise ValidationError.invalid_input("must not be after end", field="start")


def _filters(query: AuditQuery) -> list[ColumnElement[bool]]:
    clauses: list[ColumnElement[bool]] = []
    if query.actor_type is not None:
        clauses.append(AuditLogEntry.actor_type == query.actor_type.value)
    if actions := query.action_set:
        clauses.append(AuditLogEntry.action.in_(sorted(actions)))
    if query.actor_id is not None:
        clauses.append(AuditLogEntry.actor_id == query.actor_id)
    if query.target_user_id is not None:
        clauses.append(AuditLogEntry.target_user_id == query.target_user_id)
    if query.entity_type is not None:
        clauses.append(AuditLogEntry.entity_type == query.entity_type)
    if query.entity_id is not None:
        clauses.append(AuditLogEntry.entity_id == query.entity_id)
    if query.start is not None:
        clauses.append(AuditLogEntry.created_at >= query.start)
    if query.end is not None:
        clauses.append(AuditLogEntry.created_at <= query.end)
    return clauses


class AuditTrail:
    """Record and query audit log entries.

    Parameters
    ----------
    session_factory:
        Async session factory bound to the commithabit database.
    config:
        Retention settings used by :meth:`purge_expired`.

    """

    def __init__(
        self,
        session_factory: SessionFactory,
        config: AuditConfig | None = None,
    ) -> None:
        """Configure the trail with its session factory."""
        self._session_factory = session_factory
        self._config = config or AuditConfig()

    async def record(self, entry: AuditEntryCreate) -> str | None:
        """Append *entry* in its own transaction.

        Write failures are logged and swallowed so the audited operation is
        never aborted by the audit log.

        Returns
        -------
        str | None
            The new entry id, or ``None`` when the write failed.

        """
        try:
            async with self._session_factory() as session, session.begin():
                row = AuditLogEntry(
                    actor_type=entry.actor_type.value,
                    actor_id=entry.actor_id,
                    action=str(entry.action),
                    target_user_id=entry.target_user_id,
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    details=dict(entry.metadata),
                    created_at=entry.created_at or utcnow(),
                )
                session.add(row)
                await session.flush()
                entry_id = row.id
        except Exception as exc:  # noqa: BLE001 - audit writes are best effort
            log_exception(
                logger,
                format_log_message(
                    "Failed to record audit entry action=%s entity=%s:%s",
                    entry.action,
                    entry.entity_type,
                    entry.entity_id,
                ),
                exc,
            )
            return None
        return entry_id

    async def query(self, query: AuditQuery | None = None) -> AuditPage:
        """Return one page of entries matching *query*.

        Entries are ordered by ``created_at`` descending, ties broken by
        ``id`` descending. Cursor mode is used unless ``offset`` is given.

        Raises
        ------
        ValidationError
            If the limit, offset, cursor or date range is invalid.
        StorageError
            If the database cannot be read.

        """
        query = query or AuditQuery()
        _validate_page(query)
        clauses = _filters(query)

        with translate_storage_errors("query audit log"):
            async with self._session_factory() as session:
                total = await session.scalar(
                    select(func.count()).select_from(AuditLogEntry).where(*clauses)
                )
                if query.offset is not None:
                    return await self._offset_page(
                        session, query, clauses, int(total or 0)
                    )
                return await self._cursor_page(session, query, clauses, int(total or 0))

    async def _cursor_page(
        self,
        session: AsyncSession,
        query: AuditQuery,
        clauses: list[ColumnElement[bool]],
        total: int,
    ) -> AuditPage:
        stmt = select(AuditLogEntry).where(*clauses)
        if query.cursor is not None:
            after_ts, after_id = decode_cursor(query.cursor)
            stmt = stmt.where(
                or_(
                    AuditLogEntry.created_at < after_ts,
                    and_(
                        AuditLogEntry.created_at == after_ts,
                        AuditLogEntry.id < after_id,
                    ),
                )
            )
        rows = (
            await session.scalars(
                stmt.order_by(
                    AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc()
                ).limit(query.limit + 1)
            )
        ).all()
        has_more = len(rows) > query.limit
        page = rows[: query.limit]
        next_cursor = (
            encode_cursor(page[-1].created_at, page[-1].id) if has_more else None
        )
        return AuditPage(
            entries=tuple(_to_entry(row) for row in page),
            total=total,
            has_more=has_more,
            next_cursor=next_cursor,
        )

    async def _offset_page(
        self,
        session: AsyncSession,
        query: AuditQuery,
        clauses: list[ColumnElement[bool]],
        total: int,
    ) -> AuditPage:
        offset = query.offset or 0
        rows = (
            await session.scalars(
                select(AuditLogEntry)
                .where(*clauses)
                .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
                .offset(offset)
                .limit(query.limit)
            )
        ).all()
        return AuditPage(
            entries=tuple(_to_entry(row) for row in rows),
            total=total,
            has_more=offset + len(rows) < total,
            next_cursor=None,
        )

    async def delete_older_than(self, cutoff: dt.datetime) -> int:
        """Delete every entry created before *cutoff*; return the count.

        Raises
        ------
        StorageError
            If the delete fails.

        """
        with translate_storage_errors("delete expired audit entries"):
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    delete(AuditLogEntry).where(AuditLogEntry.created_at < cutoff)
                )
                deleted = int(getattr(result, "rowcount", 0) or 0)
        log_info(
            logger,
            "Deleted %d audit entries older than %s",
            deleted,
            cutoff.isoformat(),
        )
        return deleted

    async def purge_expired(self, *, now: dt.datetime | None = None) -> int:
        """Apply the configured retention window; return the count removed."""
        cutoff = self._config.retention_cutoff(now or utcnow())
        deleted = await self.delete_older_than(cutoff)
        await self.record(
            AuditEntryCreate(
                action=AuditAction.AUDIT_PURGED,
                actor_type=ActorType.SYSTEM,
                entity_type=EntityType.AUDIT_LOG,
                metadata={"deleted": deleted, "cutoff": cutoff.isoformat()},
            )
        )
        return deleted
