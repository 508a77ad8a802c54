"""Emit structured observability events for daily commit runs.

Every record carries the component, the installation and, for failures,
the error kind and code so an operator can reconstruct what happened from
logs alone.

Usage
-----
>>> event_logger = CommitEventLogger()
>>> event_logger.log_run_started(installation_count=4, max_workers=3)

"""

from __future__ import annotations

import enum
import typing as typ

from commithabit.logging import get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    from commithabit.errors import CommitHabitError
    from commithabit.orchestrator.models import BatchSummary
    from commithabit.registry.models import InstallationInfo

logger = get_logger(__name__)

_COMPONENT = "orchestrator"


class CommitEventType(enum.StrEnum):
    """Structured log event types for the commit workflow."""

    RUN_STARTED = "commit.run.started"
    RUN_COMPLETED = "commit.run.completed"
    RUN_REJECTED = "commit.run.rejected"
    INSTALLATION_COMMITTED = "commit.installation.committed"
    INSTALLATION_SKIPPED = "commit.installation.skipped"
    INSTALLATION_FAILED = "commit.installation.failed"
    INSTALLATION_DEACTIVATED = "commit.installation.deactivated"
    INSTALLATION_NOT_ATTEMPTED = "commit.installation.not_attempted"
    REQUEST_RETRIED = "commit.request.retried"


class CommitEventLogger:
    """Emit structured commit workflow events via femtologging."""

    def log_run_started(self, *, installation_count: int, max_workers: int) -> None:
        """Log the start of a daily run."""
        log_info(
            logger,
            "[%s] component=%s installations=%d max_workers=%d",
            CommitEventType.RUN_STARTED,
            _COMPONENT,
            installation_count,
            max_workers,
        )

    def log_run_rejected(self, *, error: CommitHabitError) -> None:
        """Log a run that could not start."""
        log_error(
            logger,
            "[%s] component=%s error_kind=%s error_code=%s message=%s",
            CommitEventType.RUN_REJECTED,
            _COMPONENT,
            error.kind,
            error.code,
            error.message,
        )

    def log_run_completed(self, *, summary: BatchSummary) -> None:
        """Log the aggregate counts of a finished run.

        Parameters
        ----------
        summary
            Tallied outcomes of the run.

        """
        duration = (summary.finished_at - summary.started_at).total_seconds()
        log_info(
            logger,
            "[%s] component=%s processed=%d committed=%d skipped=%d failed=%d "
            "not_attempted=%d duration_s=%.3f",
            CommitEventType.RUN_COMPLETED,
            _COMPONENT,
            summary.processed,
            summary.committed,
            summary.skipped,
            summary.failed,
            summary.not_attempted,
            duration,
        )

    def log_committed(self, *, installation: InstallationInfo, sha: str) -> None:
        """Log a keep-alive commit."""
        log_info(
            logger,
            "[%s] component=%s installation_id=%s repository=%s sha=%s",
            CommitEventType.INSTALLATION_COMMITTED,
            _COMPONENT,
            installation.installation_id,
            installation.repo_full_name,
            sha,
        )

    def log_skipped(self, *, installation: InstallationInfo, reason: str) -> None:
        """Log an installation that already committed today."""
        log_info(
            logger,
            "[%s] component=%s installation_id=%s repository=%s reason=%s",
            CommitEventType.INSTALLATION_SKIPPED,
            _COMPONENT,
            installation.installation_id,
            installation.repo_full_name,
            reason,
        )

    def log_failed(
        self, *, installation: InstallationInfo, error: CommitHabitError
    ) -> None:
        """Log a failed installation with its classified error.

        Parameters
        ----------
        installation
            Installation whose workflow failed.
        error
            Classified failure.

        """
        log_error(
            logger,
            "[%s] component=%s installation_id=%s repository=%s error_kind=%s "
            "error_code=%s retryable=%s message=%s",
            CommitEventType.INSTALLATION_FAILED,
            _COMPONENT,
            installation.installation_id,
            installation.repo_full_name,
            error.kind,
            error.code,
            error.retryable,
            error.message,
        )

    def log_deactivated(self, *, installation: InstallationInfo, reason: str) -> None:
        """Log an installation switched off after revocation."""
        log_warning(
            logger,
            "[%s] component=%s installation_id=%s repository=%s reason=%s",
            CommitEventType.INSTALLATION_DEACTIVATED,
            _COMPONENT,
            installation.installation_id,
            installation.repo_full_name,
            reason,
        )

    def log_not_attempted(self, *, installation: InstallationInfo) -> None:
        """Log an installation cut off by the batch timeout."""
        log_warning(
            logger,
            "[%s] component=%s installation_id=%s repository=%s",
            CommitEventType.INSTALLATION_NOT_ATTEMPTED,
            _COMPONENT,
            installation.installation_id,
            installation.repo_full_name,
        )

    def log_retry(
        self,
        *,
        installation: InstallationInfo,
        error: CommitHabitError,
        attempt: int,
        delay_s: float,
    ) -> None:
        """Log a retryable GitHub failure about to be retried."""
        log_warning(
            logger,
            "[%s] component=%s installation_id=%s error_code=%s attempt=%d "
            "delay_s=%.2f",
            CommitEventType.REQUEST_RETRIED,
            _COMPONENT,
            installation.installation_id,
            error.code,
            attempt,
            delay_s,
        )
