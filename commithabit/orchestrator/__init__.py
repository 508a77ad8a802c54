"""Daily keep-alive commit workflow.

Public API
----------
BatchSummary
    Aggregate counts and per-installation outcomes of one daily run.
CommitOrchestrator
    Runs the check, toggle and commit workflow over a bounded worker pool.
CommitOutcome
    Terminal state of one installation within a run.
OrchestratorConfig
    Worker pool size, batch timeout, target file and bot identity.
OutcomeStatus
    ``committed``, ``skipped``, ``failed`` or ``not_attempted``.
toggle_content
    Pure involution flipping the trailing invisible marker of a file.

Example:
Run the daily job once:

>>> orchestrator = CommitOrchestrator(
...     registry=registry,
...     broker=broker,
...     github=client,
...     audit=audit,
...     config=OrchestratorConfig(max_workers=3),
... )
>>> summary = await orchestrator.run_daily()

"""

from commithabit.orchestrator.config import OrchestratorConfig
from commithabit.orchestrator.models import BatchSummary, CommitOutcome, OutcomeStatus
from commithabit.orchestrator.service import CommitOrchestrator
from commithabit.orchestrator.toggle import (
    COMMIT_MESSAGES,
    ZERO_WIDTH_SPACE,
    commit_message_for,
    toggle_content,
)

__all__ = [
    "COMMIT_MESSAGES",
    "ZERO_WIDTH_SPACE",
    "BatchSummary",
    "CommitOrchestrator",
    "CommitOutcome",
    "OrchestratorConfig",
    "OutcomeStatus",
    "commit_message_for",
    "toggle_content",
]
