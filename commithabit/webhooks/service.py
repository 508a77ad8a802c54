"""Apply GitHub App lifecycle deliveries to the installation registry.

Usage
-----
Verify, parse and apply a delivery::

    verify_signature(raw_body, headers["X-Hub-Signature-256"], secret)
    ingester = WebhookIngester(registry, audit, on_revoked=broker.invalidate)
    event = ingester.parse_event(
        headers["X-GitHub-Event"], headers["X-GitHub-Delivery"], raw_body
    )
    result = await ingester.handle_event(event)

"""

from __future__ import annotations

import asyncio
import typing as typ
import weakref

import msgspec

from commithabit.audit.models import (
    ActorType,
    AuditAction,
    AuditEntryCreate,
    EntityType,
)
from commithabit.errors import ValidationError, WebhookError
from commithabit.registry.models import ActivationStatus
from commithabit.webhooks.models import (
    DeliveryOutcome,
    DeliveryResult,
    InstallationEventPayload,
    InstallationRepositoriesEventPayload,
    OtherEventPayload,
    RepositoryPayload,
    RepositoryRef,
    WebhookEvent,
)
from commithabit.webhooks.observability import WebhookEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from commithabit.audit.service import AuditTrail
    from commithabit.registry.models import InstallationInfo
    from commithabit.registry.service import InstallationRegistry
    from commithabit.webhooks.models import AccountPayload, InstallationPayload

INSTALLATION_EVENT = "installation"
INSTALLATION_REPOSITORIES_EVENT = "installation_repositories"

_CAP_ENFORCED = frozenset(
    {"installation.created", "installation_repositories.added"}
)

type _EventHandler = cabc.Callable[[WebhookEvent], cabc.Awaitable[DeliveryResult]]


def _refs(
    repositories: list[RepositoryPayload] | None,
) -> tuple[RepositoryRef, ...]:
    return tuple(
        RepositoryRef(repo_id=repo.id, full_name=repo.full_name)
        for repo in repositories or ()
    )


def _owner_id(
    sender: AccountPayload | None, installation: InstallationPayload | None
) -> str | None:
    if sender is not None:
        return str(sender.id)
    if installation is not None and installation.account is not None:
        return str(installation.account.id)
    return None


class WebhookIngester:
    """Idempotent, per-installation serialised lifecycle event handling.

    Parameters
    ----------
    registry
        Installation state store; also remembers processed delivery ids.
    audit
        Receives one entry per lifecycle change or cap rejection.
    on_revoked
        Called with the installation id when an installation is deleted or
        suspended, typically ``CredentialBroker.invalidate``.
    event_logger
        Structured log emitter.

    """

    def __init__(
        self,
        registry: InstallationRegistry,
        audit: AuditTrail,
        *,
        on_revoked: cabc.Callable[[int], None] | None = None,
        event_logger: WebhookEventLogger | None = None,
    ) -> None:
        """Wire the ingester to its collaborators."""
        self._registry = registry
        self._audit = audit
        self._on_revoked = on_revoked
        self._events = event_logger or WebhookEventLogger()
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._handlers: dict[str, _EventHandler] = {
            "installation.created": self._activate_listed,
            "installation.deleted": self._deactivate_all,
            "installation.suspend": self._suspend,
            "installation.unsuspend": self._unsuspend,
            "installation_repositories.added": self._activate_listed,
            "installation_repositories.removed": self._deactivate_listed,
        }

    def parse_event(
        self, event_name: str | None, delivery_id: str | None, raw_payload: bytes
    ) -> WebhookEvent:
        """Decode a verified delivery into a :class:`WebhookEvent`.

        Raises
        ------
        WebhookError
            If the event or delivery header is missing.
        ValidationError
            If the body is not valid JSON of the expected shape.

        """
        if not event_name:
            raise WebhookError.missing_header("X-GitHub-Event")
        if not delivery_id:
            raise WebhookError.missing_header("X-GitHub-Delivery")

        try:
            if event_name == INSTALLATION_EVENT:
                payload = msgspec.json.decode(
                    raw_payload, type=InstallationEventPayload
                )
                return WebhookEvent(
                    name=event_name,
                    delivery_id=delivery_id,
                    action=payload.action,
                    installation_id=payload.installation.id,
                    user_id=_owner_id(payload.sender, payload.installation),
                    repositories_added=_refs(payload.repositories),
                )
            if event_name == INSTALLATION_REPOSITORIES_EVENT:
                repos = msgspec.json.decode(
                    raw_payload, type=InstallationRepositoriesEventPayload
                )
                return WebhookEvent(
                    name=event_name,
                    delivery_id=delivery_id,
                    action=repos.action,
                    installation_id=repos.installation.id,
                    user_id=_owner_id(repos.sender, repos.installation),
                    repositories_added=_refs(repos.repositories_added),
                    repositories_removed=_refs(repos.repositories_removed),
                )
            other = msgspec.json.decode(raw_payload, type=OtherEventPayload)
        except msgspec.DecodeError as exc:
            raise ValidationError.malformed_payload(str(exc)) from exc
        return WebhookEvent(
            name=event_name,
            delivery_id=delivery_id,
            action=other.action,
            installation_id=other.installation.id if other.installation else None,
        )

    async def handle_event(self, event: WebhookEvent) -> DeliveryResult:
        """Apply *event* once per delivery id.

        Returns
        -------
        DeliveryResult
            ``duplicate`` for a replayed delivery id, ``ignored`` for events
            this service does not act on, otherwise the rows that changed.

        Raises
        ------
        ValidationError
            If a created/added event was refused because the owner is at
            the active-installation cap. The delivery and the rejection are
            recorded first, so a redelivery is a duplicate.
        StorageError
            If the registry is unavailable.

        """
        if await self._registry.delivery_seen(event.delivery_id):
            return self._duplicate(event)

        handler = self._handlers.get(event.qualified_name)
        if handler is None or event.installation_id is None:
            await self._registry.record_delivery(
                event.delivery_id,
                event=event.name,
                action=event.action,
                installation_id=event.installation_id,
                outcome=DeliveryOutcome.IGNORED,
            )
            self._events.log_ignored(event=event)
            return DeliveryResult(
                event.delivery_id, event.qualified_name, DeliveryOutcome.IGNORED
            )

        async with self._lock_for(event.installation_id):
            # Re-check under the lock: a concurrent copy may have finished.
            if await self._registry.delivery_seen(event.delivery_id):
                return self._duplicate(event)
            result = await handler(event)
            await self._registry.record_delivery(
                event.delivery_id,
                event=event.name,
                action=event.action,
                installation_id=event.installation_id,
                outcome=result.outcome,
            )

        self._events.log_handled(event=event, result=result)
        if result.rejected and event.qualified_name in _CAP_ENFORCED:
            raise ValidationError.installation_cap(
                event.user_id or "", self._registry.max_active_per_user
            )
        return result

    def _lock_for(self, installation_id: int) -> asyncio.Lock:
        lock = self._locks.get(installation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[installation_id] = lock
        return lock

    def _duplicate(self, event: WebhookEvent) -> DeliveryResult:
        self._events.log_duplicate(event=event)
        return DeliveryResult(
            event.delivery_id, event.qualified_name, DeliveryOutcome.DUPLICATE
        )

    async def _activate_listed(self, event: WebhookEvent) -> DeliveryResult:
        if event.user_id is None:
            msg = "delivery has no sender or installation account"
            raise ValidationError.malformed_payload(msg)
        installation_id = typ.cast("int", event.installation_id)

        activated: list[str] = []
        rejected: list[str] = []
        for repo in event.repositories_added:
            try:
                result = await self._registry.activate_repository(
                    installation_id=installation_id,
                    repo_id=repo.repo_id,
                    repo_full_name=repo.full_name,
                    user_id=event.user_id,
                )
            except ValidationError:
                rejected.append(repo.full_name)
                await self._record_rejection(event, repo)
                continue
            if result.changed:
                activated.append(result.installation.id)
                action = (
                    AuditAction.INSTALLATION_CREATED
                    if result.status is ActivationStatus.CREATED
                    else AuditAction.INSTALLATION_REACTIVATED
                )
                await self._record(event, action, result.installation)

        return self._result(event, activated=activated, rejected=rejected)

    async def _deactivate_all(self, event: WebhookEvent) -> DeliveryResult:
        installation_id = typ.cast("int", event.installation_id)
        changed = await self._registry.deactivate_installation(installation_id)
        self._revoke(installation_id)
        for row in changed:
            await self._record(event, AuditAction.INSTALLATION_DEACTIVATED, row)
        return self._result(event, deactivated=[row.id for row in changed])

    async def _deactivate_listed(self, event: WebhookEvent) -> DeliveryResult:
        installation_id = typ.cast("int", event.installation_id)
        deactivated: list[str] = []
        for repo in event.repositories_removed:
            row = await self._registry.deactivate_repository(
                installation_id, repo.repo_id
            )
            if row is not None:
                deactivated.append(row.id)
                await self._record(event, AuditAction.INSTALLATION_DEACTIVATED, row)
        return self._result(event, deactivated=deactivated)

    async def _suspend(self, event: WebhookEvent) -> DeliveryResult:
        installation_id = typ.cast("int", event.installation_id)
        changed = await self._registry.deactivate_installation(installation_id)
        self._revoke(installation_id)
        for row in changed:
            await self._record(event, AuditAction.INSTALLATION_SUSPENDED, row)
        return self._result(event, deactivated=[row.id for row in changed])

    async def _unsuspend(self, event: WebhookEvent) -> DeliveryResult:
        installation_id = typ.cast("int", event.installation_id)
        outcome = await self._registry.reactivate_installation(installation_id)
        for row in outcome.activated:
            await self._record(event, AuditAction.INSTALLATION_RESUMED, row)
        for row in outcome.rejected:
            await self._record_rejection(
                event, RepositoryRef(row.repo_id, row.repo_full_name), row.user_id
            )
        return self._result(
            event,
            activated=[row.id for row in outcome.activated],
            rejected=[row.repo_full_name for row in outcome.rejected],
        )

    def _revoke(self, installation_id: int) -> None:
        if self._on_revoked is not None:
            self._on_revoked(installation_id)

    @staticmethod
    def _result(
        event: WebhookEvent,
        *,
        activated: cabc.Sequence[str] = (),
        deactivated: cabc.Sequence[str] = (),
        rejected: cabc.Sequence[str] = (),
    ) -> DeliveryResult:
        if activated or deactivated:
            outcome = DeliveryOutcome.APPLIED
        elif rejected:
            outcome = DeliveryOutcome.REJECTED
        else:
            outcome = DeliveryOutcome.NO_CHANGE
        return DeliveryResult(
            event.delivery_id,
            event.qualified_name,
            outcome,
            activated=tuple(activated),
            deactivated=tuple(deactivated),
            rejected=tuple(rejected),
        )

    async def _record(
        self, event: WebhookEvent, action: AuditAction, row: InstallationInfo
    ) -> None:
        await self._audit.record(
            AuditEntryCreate(
                action=action,
                actor_type=ActorType.USER,
                actor_id=event.user_id,
                target_user_id=row.user_id,
                entity_type=EntityType.INSTALLATION,
                entity_id=row.id,
                metadata={
                    "installation_id": row.installation_id,
                    "repository": row.repo_full_name,
                    "delivery_id": event.delivery_id,
                    "event": event.qualified_name,
                },
            )
        )

    async def _record_rejection(
        self, event: WebhookEvent, repo: RepositoryRef, owner: str | None = None
    ) -> None:
        user_id = owner or event.user_id or ""
        cap = self._registry.max_active_per_user
        self._events.log_cap_reached(
            event=event, repository=repo.full_name, user_id=user_id, cap=cap
        )
        await self._audit.record(
            AuditEntryCreate(
                action=AuditAction.INSTALLATION_REJECTED,
                actor_type=ActorType.USER,
                actor_id=event.user_id,
                target_user_id=user_id,
                entity_type=EntityType.INSTALLATION,
                metadata={
                    "installation_id": event.installation_id,
                    "repository": repo.full_name,
                    "repo_id": repo.repo_id,
                    "cap": cap,
                    "delivery_id": event.delivery_id,
                    "event": event.qualified_name,
                },
            )
        )
