"""Per-installation outcomes and the daily run summary."""

from __future__ import annotations

import collections
import dataclasses
import enum
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from commithabit.errors import CommitHabitError
    from commithabit.registry.models import InstallationInfo


class OutcomeStatus(enum.StrEnum):
    """Terminal state of one installation within a run."""

    COMMITTED = "committed"
    SKIPPED = "skipped"
    FAILED = "failed"
    NOT_ATTEMPTED = "not_attempted"


@dataclasses.dataclass(frozen=True, slots=True)
class CommitOutcome:
    """What happened to one installation.

    ``error_kind``, ``error_code`` and ``error_message`` are set only for
    ``FAILED``; ``commit_sha`` only for ``COMMITTED``; ``deactivated`` is
    True when the failure caused the installation to be switched off.
    """

    installation_pk: str
    installation_id: int
    repo_full_name: str
    status: OutcomeStatus
    at: dt.datetime
    commit_sha: str | None = None
    skip_reason: str | None = None
    error_kind: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    deactivated: bool = False

    @classmethod
    def committed(
        cls, installation: InstallationInfo, at: dt.datetime, sha: str
    ) -> CommitOutcome:
        """Build a ``COMMITTED`` outcome."""
        return cls(
            installation.id,
            installation.installation_id,
            installation.repo_full_name,
            OutcomeStatus.COMMITTED,
            at,
            commit_sha=sha,
        )

    @classmethod
    def skipped(
        cls, installation: InstallationInfo, at: dt.datetime, reason: str
    ) -> CommitOutcome:
        """Build a ``SKIPPED`` outcome."""
        return cls(
            installation.id,
            installation.installation_id,
            installation.repo_full_name,
            OutcomeStatus.SKIPPED,
            at,
            skip_reason=reason,
        )

    @classmethod
    def failed(
        cls,
        installation: InstallationInfo,
        at: dt.datetime,
        error: CommitHabitError,
        *,
        deactivated: bool = False,
    ) -> CommitOutcome:
        """Build a ``FAILED`` outcome from a classified error."""
        return cls(
            installation.id,
            installation.installation_id,
            installation.repo_full_name,
            OutcomeStatus.FAILED,
            at,
            error_kind=error.kind.value,
            error_code=error.code,
            error_message=error.message,
            deactivated=deactivated,
        )

    @classmethod
    def not_attempted(
        cls, installation: InstallationInfo, at: dt.datetime
    ) -> CommitOutcome:
        """Build a ``NOT_ATTEMPTED`` outcome for work cut off by the timeout."""
        return cls(
            installation.id,
            installation.installation_id,
            installation.repo_full_name,
            OutcomeStatus.NOT_ATTEMPTED,
            at,
        )

    def to_dict(self) -> dict[str, typ.Any]:
        """Return a JSON-ready representation."""
        payload: dict[str, typ.Any] = {
            "installation": self.installation_pk,
            "installation_id": self.installation_id,
            "repository": self.repo_full_name,
            "status": self.status.value,
            "at": self.at.isoformat(),
        }
        optional = {
            "commit_sha": self.commit_sha,
            "skip_reason": self.skip_reason,
            "error_kind": self.error_kind,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
        payload.update({key: value for key, value in optional.items() if value})
        if self.deactivated:
            payload["deactivated"] = True
        return payload


@dataclasses.dataclass(frozen=True, slots=True)
class BatchSummary:
    """Aggregate result of one daily run.

    Attributes
    ----------
    processed
        Installations that were attempted (committed, skipped or failed).
    committed, skipped
        Counts of those outcomes.
    failed_by_kind
        Failure counts keyed by error kind.
    not_attempted
        Installations cut off by the batch timeout.
    outcomes
        One outcome per active installation.

    """

    started_at: dt.datetime
    finished_at: dt.datetime
    processed: int
    committed: int
    skipped: int
    failed_by_kind: dict[str, int]
    not_attempted: int
    outcomes: tuple[CommitOutcome, ...]

    @property
    def failed(self) -> int:
        """Return the total number of failed installations."""
        return sum(self.failed_by_kind.values())

    @classmethod
    def from_outcomes(
        cls,
        outcomes: cabc.Iterable[CommitOutcome],
        *,
        started_at: dt.datetime,
        finished_at: dt.datetime,
    ) -> BatchSummary:
        """Tally *outcomes* into a summary."""
        collected = tuple(outcomes)
        statuses = collections.Counter(outcome.status for outcome in collected)
        failures = collections.Counter(
            outcome.error_kind or "unknown"
            for outcome in collected
            if outcome.status is OutcomeStatus.FAILED
        )
        not_attempted = statuses[OutcomeStatus.NOT_ATTEMPTED]
        return cls(
            started_at=started_at,
            finished_at=finished_at,
            processed=len(collected) - not_attempted,
            committed=statuses[OutcomeStatus.COMMITTED],
            skipped=statuses[OutcomeStatus.SKIPPED],
            failed_by_kind=dict(failures),
            not_attempted=not_attempted,
            outcomes=collected,
        )

    def counts(self) -> dict[str, typ.Any]:
        """Return the aggregate counts without per-installation detail."""
        return {
            "processed": self.processed,
            "committed": self.committed,
            "skipped": self.skipped,
            "failed": self.failed,
            "failed_by_kind": dict(self.failed_by_kind),
            "not_attempted": self.not_attempted,
        }

    def to_dict(self) -> dict[str, typ.Any]:
        """Return a JSON-ready representation including every outcome."""
        return {
            **self.counts(),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }
