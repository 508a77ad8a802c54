"""Behavioural tests for the daily keep-alive run."""

from __future__ import annotations

import asyncio
import datetime as dt
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from commithabit.audit import AuditAction, AuditQuery, AuditTrail
from commithabit.credentials.broker import CredentialBroker
from commithabit.errors import ExternalApiError
from commithabit.orchestrator import CommitOrchestrator, OrchestratorConfig
from commithabit.registry import InstallationRegistry
from tests.helpers.github_fakes import FakeGitHub

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from commithabit.github.config import GitHubAppConfig
    from commithabit.orchestrator import BatchSummary
    from tests.conftest import SleepRecorder

NOW = dt.datetime(2026, 3, 2, 6, 0, tzinfo=dt.UTC)
REPOSITORIES = ("octo/repo-1", "octo/repo-2", "octo/repo-3")


class DailyCommitContext(typ.TypedDict, total=False):
    """Shared mutable scenario state."""

    registry: InstallationRegistry
    audit: AuditTrail
    github: FakeGitHub
    orchestrator: CommitOrchestrator
    installation_ids: dict[str, int]
    summary: BatchSummary


@scenario("../daily_commit.feature", "The daily run commits once per day")
def test_daily_run_commits_once_per_day() -> None:
    """Wrap the pytest-bdd scenario for same-day idempotence."""


@scenario("../daily_commit.feature", "A failing repository does not affect the others")
def test_failing_repository_is_isolated() -> None:
    """Wrap the pytest-bdd scenario for batch isolation."""


@scenario("../daily_commit.feature", "A revoked installation is deactivated")
def test_revoked_installation_is_deactivated() -> None:
    """Wrap the pytest-bdd scenario for revocation handling."""


@pytest.fixture
def daily_context(
    session_factory: async_sessionmaker[AsyncSession],
    app_config: GitHubAppConfig,
    sleeper: SleepRecorder,
) -> DailyCommitContext:
    """Wire an orchestrator to sqlite and an in-memory GitHub at a fixed time."""
    registry = InstallationRegistry(session_factory)
    audit = AuditTrail(session_factory)
    github = FakeGitHub(now=NOW)
    broker = CredentialBroker(app_config, github, clock=lambda: NOW)
    orchestrator = CommitOrchestrator(
        registry=registry,
        broker=broker,
        github=github,
        audit=audit,
        config=OrchestratorConfig(max_workers=3),
        clock=lambda: NOW,
        sleep=sleeper,
    )
    return {
        "registry": registry,
        "audit": audit,
        "github": github,
        "orchestrator": orchestrator,
        "installation_ids": {},
    }


@given("three enrolled repositories")
def given_three_repositories(daily_context: DailyCommitContext) -> None:
    """Enrol three repositories owned by different users."""
    registry = daily_context["registry"]

    async def _enrol() -> None:
        for index, name in enumerate(REPOSITORIES, start=1):
            daily_context["github"].add_repo(name)
            daily_context["installation_ids"][name] = 100 + index
            await registry.activate_repository(
                installation_id=100 + index,
                repo_id=index,
                repo_full_name=name,
                user_id=f"user-{index}",
            )

    asyncio.run(_enrol())


@given(parsers.parse('repository "{repo}" rejects writes'))
def given_repository_rejects_writes(
    daily_context: DailyCommitContext, repo: str
) -> None:
    """Queue a permission failure for the next write to *repo*."""
    daily_context["github"].fail(
        "put_file", repo, ExternalApiError.permission_denied("read-only")
    )


@given(parsers.parse('the installation for "{repo}" has been revoked'))
def given_installation_revoked(daily_context: DailyCommitContext, repo: str) -> None:
    """Make token exchange for *repo*'s installation fail with 401."""
    daily_context["github"].revoked.add(daily_context["installation_ids"][repo])


@when("the daily run executes")
@when("the daily run executes again")
def when_daily_run(daily_context: DailyCommitContext) -> None:
    """Run the daily batch to completion."""
    orchestrator = daily_context["orchestrator"]
    daily_context["summary"] = asyncio.run(orchestrator.run_daily())


@then(parsers.parse("{count:d} installations are committed"))
def then_committed(daily_context: DailyCommitContext, count: int) -> None:
    """Check the committed count of the last run."""
    summary = daily_context["summary"]
    assert summary.committed == count, (
        f"expected {count} commits, got {summary.counts()}"
    )


@then(parsers.parse("{count:d} installations are skipped"))
def then_skipped(daily_context: DailyCommitContext, count: int) -> None:
    """Check the skipped count of the last run."""
    summary = daily_context["summary"]
    assert summary.skipped == count, (
        f"expected {count} skips, got {summary.counts()}"
    )
    assert summary.committed == 0, "a repeat run must not commit"


@then(parsers.parse('{count:d} installation failed with kind "{kind}"'))
def then_failed_with_kind(
    daily_context: DailyCommitContext, count: int, kind: str
) -> None:
    """Check the failure tally of the last run."""
    summary = daily_context["summary"]
    assert summary.failed_by_kind == {kind: count}, (
        f"expected {count} {kind} failure(s), got {summary.failed_by_kind}"
    )


@then("each repository has exactly 1 keep-alive commit")
def then_one_commit_each(daily_context: DailyCommitContext) -> None:
    """No repository received more than one commit for the day."""
    github = daily_context["github"]
    counts = {name: github.commit_count(name) for name in REPOSITORIES}
    assert set(counts.values()) == {1}, f"expected one commit each, got {counts}"


@then(parsers.parse('"{repo}" is no longer active'))
def then_repository_inactive(daily_context: DailyCommitContext, repo: str) -> None:
    """The revoked repository drops out of the active set."""
    active = asyncio.run(daily_context["registry"].list_active())
    names = [row.repo_full_name for row in active]
    assert repo not in names, f"{repo} should be inactive, active: {names}"
    assert len(names) == len(REPOSITORIES) - 1, "siblings should stay active"


@then(parsers.parse("the audit trail records {count:d} deactivation"))
def then_deactivation_audited(daily_context: DailyCommitContext, count: int) -> None:
    """Each deactivated row is audited exactly once."""
    page = asyncio.run(
        daily_context["audit"].query(
            AuditQuery(action=AuditAction.INSTALLATION_DEACTIVATED)
        )
    )
    assert page.total == count, f"expected {count} audit entries, got {page.total}"
