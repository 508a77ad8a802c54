"""Daily idempotent keep-alive commit workflow.

Per installation the workflow moves through
``start -> checked today -> (skipped | fetched -> toggled -> committed | failed)``.
Every outcome is returned as a :class:`CommitOutcome` value; a failure in one
installation is recorded and never propagates into the batch.

Usage
-----
::

    orchestrator = CommitOrchestrator(
        registry=registry,
        broker=broker,
        github=rest_client,
        audit=audit_trail,
    )
    summary = await orchestrator.run_daily()
    print(summary.committed, summary.failed_by_kind)

"""

from __future__ import annotations

import asyncio
import functools
import threading
import time
import typing as typ
import weakref

from commithabit.audit.models import (
    ActorType,
    AuditAction,
    AuditEntryCreate,
    EntityType,
)
from commithabit.common.time import utc_day_start, utcnow
from commithabit.errors import (
    AuthenticationError,
    CommitHabitError,
    ExternalApiError,
    StorageError,
    ValidationError,
    classify_error,
    is_installation_revoked,
)
from commithabit.orchestrator.config import OrchestratorConfig
from commithabit.orchestrator.models import BatchSummary, CommitOutcome
from commithabit.orchestrator.observability import CommitEventLogger
from commithabit.orchestrator.toggle import commit_message_for, toggle_content

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from commithabit.audit.service import AuditTrail
    from commithabit.credentials.broker import CredentialBroker
    from commithabit.github.client import RepositoryContentsApi
    from commithabit.github.models import CommitResult
    from commithabit.registry.models import InstallationInfo
    from commithabit.registry.service import InstallationRegistry

_SKIP_RECORDED = "recorded_today"
_SKIP_FOUND = "commit_found_today"
_SKIP_MISSING = "target_missing"
_COMMIT_ATTEMPTS = 2

# One daily run per process, across orchestrator instances and threads.
_DAILY_RUN_LOCK = threading.Lock()


class CommitOrchestrator:
    """Run the keep-alive workflow for one or all active installations.

    Parameters
    ----------
    registry
        Source of active installations and sink for ``last_commit_at``.
    broker
        Issues installation tokens.
    github
        Repository commit and contents operations.
    audit
        Receives an entry for every outcome and lifecycle change.
    config
        Worker pool, timeout, target file and bot identity.
    event_logger
        Structured log emitter.
    clock, monotonic, sleep
        Time sources, replaceable in tests.

    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        registry: InstallationRegistry,
        broker: CredentialBroker,
        github: RepositoryContentsApi,
        audit: AuditTrail,
        config: OrchestratorConfig | None = None,
        event_logger: CommitEventLogger | None = None,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
        monotonic: cabc.Callable[[], float] = time.monotonic,
        sleep: cabc.Callable[[float], cabc.Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Wire the orchestrator to its collaborators."""
        self._registry = registry
        self._broker = broker
        self._github = github
        self._audit = audit
        self._config = config or OrchestratorConfig()
        self._events = event_logger or CommitEventLogger()
        self._clock = clock
        self._monotonic = monotonic
        self._sleep = sleep
        self._running = False
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def is_running(self) -> bool:
        """Return True while this orchestrator is running a daily batch."""
        return self._running

    async def run_daily(self) -> BatchSummary:
        """Process every active installation once.

        Returns
        -------
        BatchSummary
            Counts by outcome and failure kind plus one outcome per
            installation. Per-installation failures never raise.

        Raises
        ------
        ValidationError
            If another daily run is already in progress in this process.
        ConfigurationError
            If the GitHub App identity is not configured.
        StorageError
            If the active installations cannot be loaded.

        """
        if not _DAILY_RUN_LOCK.acquire(blocking=False):
            error = ValidationError.batch_in_progress()
            self._events.log_run_rejected(error=error)
            raise error
        self._running = True
        try:
            return await self._run_batch()
        finally:
            self._running = False
            _DAILY_RUN_LOCK.release()

    async def _run_batch(self) -> BatchSummary:
        try:
            self._broker.ensure_configured()
            installations = await self._registry.list_active()
        except CommitHabitError as exc:
            self._events.log_run_rejected(error=exc)
            raise

        started_at = self._clock()
        deadline = self._monotonic() + self._config.batch_timeout_s
        self._events.log_run_started(
            installation_count=len(installations),
            max_workers=self._config.max_workers,
        )

        outcomes: list[CommitOutcome] = []
        pending = iter(installations)

        async def worker() -> None:
            # Workers share one iterator, so each installation is taken once.
            for installation in pending:
                if self._monotonic() >= deadline:
                    self._events.log_not_attempted(installation=installation)
                    outcomes.append(
                        CommitOutcome.not_attempted(installation, self._clock())
                    )
                    continue
                outcomes.append(await self.process_installation(installation))

        worker_count = min(self._config.max_workers, len(installations))
        await asyncio.gather(*(worker() for _ in range(worker_count)))

        summary = BatchSummary.from_outcomes(
            outcomes, started_at=started_at, finished_at=self._clock()
        )
        self._events.log_run_completed(summary=summary)
        await self._audit.record(
            AuditEntryCreate(
                action=AuditAction.DAILY_RUN_COMPLETED,
                actor_type=ActorType.SYSTEM,
                entity_type=EntityType.DAILY_RUN,
                entity_id=started_at.date().isoformat(),
                metadata=summary.counts(),
            )
        )
        return summary

    async def run_for_installation(self, installation_pk: str) -> CommitOutcome:
        """Run the workflow for one active installation on demand.

        Raises
        ------
        ValidationError
            If the installation does not exist or is inactive.
        ConfigurationError
            If the GitHub App identity is not configured.

        """
        installation = await self._registry.get(installation_pk)
        if installation is None or not installation.active:
            raise ValidationError.unknown_installation(installation_pk)
        self._broker.ensure_configured()
        return await self.process_installation(installation)

    async def process_installation(
        self, installation: InstallationInfo
    ) -> CommitOutcome:
        """Run check, fetch, toggle and commit for one installation.

        Never raises for a workflow failure: the error is classified,
        logged, audited and returned as a ``FAILED`` outcome.
        Concurrent calls for the same installation run one at a time.
        """
        async with self._lock_for(installation.id):
            try:
                return await self._commit_workflow(installation)
            except Exception as exc:  # noqa: BLE001 - failures stay per installation
                return await self._handle_failure(installation, classify_error(exc))

    def _lock_for(self, installation_pk: str) -> asyncio.Lock:
        lock = self._locks.get(installation_pk)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[installation_pk] = lock
        return lock

    async def _commit_workflow(self, installation: InstallationInfo) -> CommitOutcome:
        now = self._clock()
        day_start = utc_day_start(now)

        # The caller's snapshot predates the lock; a workflow that held it
        # before us may have committed in the meantime.
        stored = await self._registry.get(installation.id)
        last_commit = (stored or installation).last_commit_at
        if last_commit is not None and last_commit >= day_start:
            return await self._skip(installation, now, _SKIP_RECORDED)

        if await self._committed_since(installation, day_start):
            return await self._skip(installation, now, _SKIP_FOUND)

        try:
            commit = await self._toggle_and_commit(
                installation, commit_message_for(now), day_start
            )
        except ExternalApiError as exc:
            if not exc.missing_target:
                raise
            return await self._skip(installation, now, _SKIP_MISSING)
        if commit is None:
            return await self._skip(installation, now, _SKIP_FOUND)

        committed_at = self._clock()
        await self._registry.mark_committed(installation.id, committed_at)
        self._events.log_committed(installation=installation, sha=commit.sha)
        await self._audit.record(
            AuditEntryCreate(
                action=AuditAction.COMMIT_CREATED,
                actor_type=ActorType.SYSTEM,
                target_user_id=installation.user_id,
                entity_type=EntityType.INSTALLATION,
                entity_id=installation.id,
                metadata={
                    "installation_id": installation.installation_id,
                    "repository": installation.repo_full_name,
                    "path": commit.path,
                    "commit_sha": commit.sha,
                },
            )
        )
        return CommitOutcome.committed(installation, committed_at, commit.sha)

    async def _committed_since(
        self, installation: InstallationInfo, day_start: dt.datetime
    ) -> bool:
        """Return True when GitHub lists a bot commit since *day_start*."""
        return await self._call(
            installation,
            functools.partial(
                self._github.has_commit_since,
                repo_full_name=installation.repo_full_name,
                author_email=self._config.bot_email,
                since=day_start,
            ),
        )

    async def _toggle_and_commit(
        self, installation: InstallationInfo, message: str, day_start: dt.datetime
    ) -> CommitResult | None:
        """Fetch, toggle and write; a stale sha is re-fetched exactly once.

        Returns None instead of retrying when the conflicting write turns
        out to be a bot commit from the same UTC day.
        """
        path = self._config.target_path
        for attempt in range(1, _COMMIT_ATTEMPTS + 1):
            if attempt > 1 and await self._committed_since(installation, day_start):
                return None
            current = await self._call(
                installation,
                functools.partial(
                    self._github.get_file,
                    repo_full_name=installation.repo_full_name,
                    path=path,
                ),
            )
            try:
                return await self._call(
                    installation,
                    functools.partial(
                        self._github.put_file,
                        repo_full_name=installation.repo_full_name,
                        path=path,
                        content=toggle_content(current.content, self._config.marker),
                        sha=current.sha,
                        message=message,
                        identity=self._config.identity,
                    ),
                )
            except ExternalApiError as exc:
                if not exc.precondition_failed or attempt == _COMMIT_ATTEMPTS:
                    raise
        msg = "unreachable: commit loop exited without result"
        raise AssertionError(msg)

    async def _call[T](
        self,
        installation: InstallationInfo,
        operation: cabc.Callable[[str], cabc.Awaitable[T]],
    ) -> T:
        """Invoke *operation* with a token, re-issuing or backing off as needed.

        A rejected (non-revoked) credential is re-issued once. Retryable
        GitHub failures are retried up to ``max_attempts`` times.
        """
        installation_id = installation.installation_id
        token = await self._broker.get_installation_token(installation_id)
        reissued = False
        attempt = 1
        while True:
            try:
                return await operation(token.token)
            except AuthenticationError as exc:
                if exc.revoked or reissued:
                    raise
                reissued = True
                self._broker.invalidate(installation_id)
                token = await self._broker.get_installation_token(installation_id)
            except ExternalApiError as exc:
                if not exc.retryable or attempt >= self._config.max_attempts:
                    raise
                delay = self._backoff(attempt, exc.retry_after)
                self._events.log_retry(
                    installation=installation,
                    error=exc,
                    attempt=attempt,
                    delay_s=delay,
                )
                await self._sleep(delay)
                attempt += 1

    def _backoff(self, attempt: int, retry_after: float | None) -> float:
        if retry_after is not None:
            return min(retry_after, self._config.backoff_max_s)
        delay = self._config.backoff_base_s * 2 ** (attempt - 1)
        return min(delay, self._config.backoff_max_s)

    async def _skip(
        self, installation: InstallationInfo, now: dt.datetime, reason: str
    ) -> CommitOutcome:
        self._events.log_skipped(installation=installation, reason=reason)
        await self._audit.record(
            AuditEntryCreate(
                action=AuditAction.COMMIT_SKIPPED,
                actor_type=ActorType.SYSTEM,
                target_user_id=installation.user_id,
                entity_type=EntityType.INSTALLATION,
                entity_id=installation.id,
                metadata={
                    "installation_id": installation.installation_id,
                    "repository": installation.repo_full_name,
                    "reason": reason,
                },
            )
        )
        return CommitOutcome.skipped(installation, now, reason)

    async def _handle_failure(
        self, installation: InstallationInfo, error: CommitHabitError
    ) -> CommitOutcome:
        now = self._clock()
        self._events.log_failed(installation=installation, error=error)
        if is_installation_revoked(error):
            deactivated = await self._deactivate(installation, error)
            return CommitOutcome.failed(
                installation, now, error, deactivated=deactivated
            )

        await self._audit.record(
            AuditEntryCreate(
                action=AuditAction.COMMIT_FAILED,
                actor_type=ActorType.SYSTEM,
                target_user_id=installation.user_id,
                entity_type=EntityType.INSTALLATION,
                entity_id=installation.id,
                metadata={
                    "installation_id": installation.installation_id,
                    "repository": installation.repo_full_name,
                    "error_kind": error.kind.value,
                    "error_code": error.code,
                    "retryable": error.retryable,
                    "message": error.message,
                },
            )
        )
        return CommitOutcome.failed(installation, now, error)

    async def _deactivate(
        self, installation: InstallationInfo, error: CommitHabitError
    ) -> bool:
        """Switch off a revoked installation (or a vanished repository)."""
        try:
            if isinstance(error, AuthenticationError):
                self._broker.invalidate(installation.installation_id)
                changed = await self._registry.deactivate_installation(
                    installation.installation_id
                )
            else:
                row = await self._registry.deactivate_repository(
                    installation.installation_id, installation.repo_id
                )
                changed = [] if row is None else [row]
        except StorageError as exc:
            self._events.log_failed(installation=installation, error=exc)
            return False

        self._events.log_deactivated(installation=installation, reason=error.code)
        for row in changed:
            await self._audit.record(
                AuditEntryCreate(
                    action=AuditAction.INSTALLATION_DEACTIVATED,
                    actor_type=ActorType.SYSTEM,
                    target_user_id=row.user_id,
                    entity_type=EntityType.INSTALLATION,
                    entity_id=row.id,
                    metadata={
                        "installation_id": row.installation_id,
                        "repository": row.repo_full_name,
                        "error_kind": error.kind.value,
                        "error_code": error.code,
                        "reason": error.message,
                    },
                )
            )
        return bool(changed)
