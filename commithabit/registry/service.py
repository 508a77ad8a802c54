"""Installation registry service.

The registry is the durable record of every repository a user authorised the
GitHub App to commit to. It enforces the per-user active cap and never
deletes rows: removal, suspension and revocation all deactivate instead.
"""

from __future__ import annotations

import asyncio
import typing as typ

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from commithabit.errors import ValidationError, translate_storage_errors
from commithabit.registry.config import RegistryConfig
from commithabit.registry.mapping import to_installation_info
from commithabit.registry.models import (
    ActivationResult,
    ActivationStatus,
    InstallationInfo,
    ReactivationResult,
)
from commithabit.registry.storage import Installation, WebhookDelivery

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

type SessionFactory = async_sessionmaker[AsyncSession]


class InstallationRegistry:
    """Create, find and update installation rows.

    Parameters
    ----------
    session_factory:
        Async session factory bound to the commithabit database.
    config:
        Registry limits; defaults to :class:`RegistryConfig`.

    Writes that can raise a user's active count are serialised within the
    process so concurrent enrolments cannot overshoot the cap.

    Every public method raises ``StorageError`` when the database fails.

    """

    def __init__(
        self,
        session_factory: SessionFactory,
        config: RegistryConfig | None = None,
    ) -> None:
        """Configure the registry with its session factory and limits."""
        self._session_factory = session_factory
        self._config = config or RegistryConfig()
        self._cap_lock = asyncio.Lock()

    @property
    def max_active_per_user(self) -> int:
        """Return the configured per-user active cap."""
        return self._config.max_active_per_user

    async def get(self, installation_pk: str) -> InstallationInfo | None:
        """Return the row with surrogate id *installation_pk*, if any."""
        with translate_storage_errors("get installation"):
            async with self._session_factory() as session:
                row = await session.get(Installation, installation_pk)
                return None if row is None else to_installation_info(row)

    async def list_active(self) -> list[InstallationInfo]:
        """Return every active installation, oldest first."""
        with translate_storage_errors("list active installations"):
            async with self._session_factory() as session:
                rows = await session.scalars(
                    select(Installation)
                    .where(Installation.active.is_(True))
                    .order_by(Installation.created_at, Installation.id)
                )
                return [to_installation_info(row) for row in rows]

    async def list_for_installation(
        self, installation_id: int
    ) -> list[InstallationInfo]:
        """Return all rows, active or not, for a platform installation id."""
        with translate_storage_errors("list installation repositories"):
            async with self._session_factory() as session:
                rows = await session.scalars(
                    select(Installation)
                    .where(Installation.installation_id == installation_id)
                    .order_by(Installation.repo_id)
                )
                return [to_installation_info(row) for row in rows]

    async def list_for_user(
        self, user_id: str, *, active: bool | None = None
    ) -> list[InstallationInfo]:
        """Return the rows owned by *user_id*, optionally filtered by state."""
        with translate_storage_errors("list user installations"):
            async with self._session_factory() as session:
                query = select(Installation).where(Installation.user_id == user_id)
                if active is not None:
                    query = query.where(Installation.active.is_(active))
                rows = await session.scalars(query.order_by(Installation.created_at))
                return [to_installation_info(row) for row in rows]

    async def count_active_for_user(self, user_id: str) -> int:
        """Return how many active rows *user_id* owns."""
        with translate_storage_errors("count active installations"):
            async with self._session_factory() as session:
                return await self._count_active(session, user_id)

    async def activate_repository(
        self,
        *,
        installation_id: int,
        repo_id: int,
        repo_full_name: str,
        user_id: str,
    ) -> ActivationResult:
        """Create or reactivate the row for one authorised repository.

        Parameters
        ----------
        installation_id:
            GitHub App installation id.
        repo_id:
            GitHub repository id.
        repo_full_name:
            ``owner/name`` of the repository; refreshed on every call.
        user_id:
            Owning user; used for new rows and for the cap check.

        Returns
        -------
        ActivationResult
            Whether the row was created, reactivated or already active.

        Raises
        ------
        ValidationError
            If the owning user already has the maximum number of active rows.
            No row is created or modified in that case.

        """
        async with self._cap_lock:
            return await self._activate_with_retry(
                installation_id, repo_id, repo_full_name, user_id
            )

    async def _activate_with_retry(
        self,
        installation_id: int,
        repo_id: int,
        repo_full_name: str,
        user_id: str,
    ) -> ActivationResult:
        with translate_storage_errors("activate installation"):
            try:
                return await self._activate(
                    installation_id, repo_id, repo_full_name, user_id
                )
            except IntegrityError:
                # A concurrent writer inserted the same repository first.
                return await self._activate(
                    installation_id, repo_id, repo_full_name, user_id
                )

    async def _activate(
        self,
        installation_id: int,
        repo_id: int,
        repo_full_name: str,
        user_id: str,
    ) -> ActivationResult:
        async with self._session_factory() as session, session.begin():
            row = await self._find(session, installation_id, repo_id)
            if row is not None and row.active:
                row.repo_full_name = repo_full_name
                return ActivationResult(
                    ActivationStatus.UNCHANGED, to_installation_info(row)
                )

            owner = row.user_id if row is not None else user_id
            await self._ensure_capacity(session, owner)

            if row is None:
                row = Installation(
                    installation_id=installation_id,
                    repo_id=repo_id,
                    repo_full_name=repo_full_name,
                    user_id=user_id,
                    active=True,
                )
                session.add(row)
                await session.flush()
                status = ActivationStatus.CREATED
            else:
                row.active = True
                row.repo_full_name = repo_full_name
                status = ActivationStatus.REACTIVATED
            return ActivationResult(status, to_installation_info(row))

    async def deactivate_repository(
        self, installation_id: int, repo_id: int
    ) -> InstallationInfo | None:
        """Deactivate one repository row.

        Returns the updated row, or ``None`` when it was unknown or already
        inactive.
        """
        with translate_storage_errors("deactivate repository"):
            async with self._session_factory() as session, session.begin():
                row = await self._find(session, installation_id, repo_id)
                if row is None or not row.active:
                    return None
                row.active = False
                return to_installation_info(row)

    async def deactivate_installation(
        self, installation_id: int
    ) -> list[InstallationInfo]:
        """Deactivate every active row of an installation.

        Returns the rows that changed; an unknown installation yields ``[]``.
        """
        with translate_storage_errors("deactivate installation"):
            async with self._session_factory() as session, session.begin():
                rows = await session.scalars(
                    select(Installation).where(
                        Installation.installation_id == installation_id,
                        Installation.active.is_(True),
                    )
                )
                changed: list[InstallationInfo] = []
                for row in rows:
                    row.active = False
                    changed.append(to_installation_info(row))
                return changed

    async def reactivate_installation(
        self, installation_id: int
    ) -> ReactivationResult:
        """Reactivate the inactive rows of an installation within the cap.

        Rows that would push their owner over the cap stay inactive and are
        reported in ``rejected``.
        """
        result = ReactivationResult()
        with translate_storage_errors("reactivate installation"):
            async with (
                self._cap_lock,
                self._session_factory() as session,
                session.begin(),
            ):
                rows = (
                    await session.scalars(
                        select(Installation)
                        .where(
                            Installation.installation_id == installation_id,
                            Installation.active.is_(False),
                        )
                        .order_by(Installation.repo_id)
                    )
                ).all()
                for row in rows:
                    active = await self._count_active(session, row.user_id)
                    if active >= self.max_active_per_user:
                        result.rejected.append(to_installation_info(row))
                        continue
                    row.active = True
                    await session.flush()
                    result.activated.append(to_installation_info(row))
        return result

    async def set_active(self, installation_pk: str, *, active: bool) -> bool:
        """Pause or resume one row by surrogate id.

        Returns
        -------
        bool
            True when the flag changed, False when it already had that value.

        Raises
        ------
        ValidationError
            If the row does not exist, or resuming it would exceed the cap.

        """
        with translate_storage_errors("set installation active"):
            async with (
                self._cap_lock,
                self._session_factory() as session,
                session.begin(),
            ):
                row = await session.get(Installation, installation_pk)
                if row is None:
                    raise ValidationError.unknown_installation(installation_pk)
                if row.active == active:
                    return False
                if active:
                    await self._ensure_capacity(session, row.user_id)
                row.active = active
                return True

    async def mark_committed(self, installation_pk: str, at: dt.datetime) -> None:
        """Record the time of the latest keep-alive commit."""
        with translate_storage_errors("update last commit time"):
            async with self._session_factory() as session, session.begin():
                row = await session.get(Installation, installation_pk)
                if row is None:
                    raise ValidationError.unknown_installation(installation_pk)
                row.last_commit_at = at

    async def delivery_seen(self, delivery_id: str) -> bool:
        """Return True when a webhook delivery id has already been applied."""
        with translate_storage_errors("look up webhook delivery"):
            async with self._session_factory() as session:
                return await session.get(WebhookDelivery, delivery_id) is not None

    async def record_delivery(
        self,
        delivery_id: str,
        *,
        event: str,
        action: str | None,
        installation_id: int | None,
        outcome: str,
    ) -> bool:
        """Store a processed delivery id.

        Returns False when another request stored the same id first.
        """
        with translate_storage_errors("record webhook delivery"):
            try:
                async with self._session_factory() as session, session.begin():
                    session.add(
                        WebhookDelivery(
                            delivery_id=delivery_id,
                            event=event,
                            action=action,
                            installation_id=installation_id,
                            outcome=outcome,
                        )
                    )
            except IntegrityError:
                return False
        return True

    async def _ensure_capacity(self, session: AsyncSession, user_id: str) -> None:
        if await self._count_active(session, user_id) >= self.max_active_per_user:
            raise ValidationError.installation_cap(user_id, self.max_active_per_user)

    @staticmethod
    async def _count_active(session: AsyncSession, user_id: str) -> int:
        count = await session.scalar(
            select(func.count())
            .select_from(Installation)
            .where(Installation.user_id == user_id, Installation.active.is_(True))
        )
        return int(count or 0)

    @staticmethod
    async def _find(
        session: AsyncSession, installation_id: int, repo_id: int
    ) -> Installation | None:
        return await session.scalar(
            select(Installation).where(
                Installation.installation_id == installation_id,
                Installation.repo_id == repo_id,
            )
        )
