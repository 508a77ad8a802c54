"""Unit tests for the commithabit command-line entry point.

Run with:
    pytest tests/unit/test_cli.py
"""

from __future__ import annotations

import datetime as dt
import json
import typing as typ
from unittest import mock

import pytest

from commithabit import cli
from commithabit.orchestrator import BatchSummary

if typ.TYPE_CHECKING:
    from pathlib import Path

NOW = dt.datetime(2026, 3, 2, 6, 0, tzinfo=dt.UTC)


@pytest.fixture
def database_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Return a sqlite URL and clear GitHub App settings."""
    for name in ("COMMITHABIT_GITHUB_APP_ID", "COMMITHABIT_GITHUB_PRIVATE_KEY"):
        monkeypatch.delenv(name, raising=False)
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the CLI from reconfiguring global logging."""
    monkeypatch.setattr("commithabit.cli.configure_logging", mock.MagicMock())


class TestMain:
    """Tests for cli.main against a real sqlite database."""

    def test_init_db_then_purge(
        self, database_url: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Schema creation and an empty retention sweep both succeed."""
        assert cli.main(["--database-url", database_url, "init-db"]) == 0, (
            "init-db should succeed"
        )
        assert cli.main(["--database-url", database_url, "purge-audit"]) == 0, (
            "purge-audit should succeed"
        )

        out = capsys.readouterr().out
        assert "schema ready" in out, "init-db reports readiness"
        assert "deleted 0 audit entries" in out, "purge reports its count"

    def test_run_daily_without_app_identity_fails(
        self, database_url: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """An unconfigured GitHub App makes the run exit with 1."""
        cli.main(["--database-url", database_url, "init-db"])

        code = cli.main(["--database-url", database_url, "run-daily"])

        assert code == 1, "expected exit code 1"
        assert "run-daily failed" in capsys.readouterr().err, "error on stderr"

    def test_run_daily_prints_summary(
        self,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """The summary is written to stdout as JSON."""
        summary = BatchSummary.from_outcomes([], started_at=NOW, finished_at=NOW)
        runner = mock.AsyncMock(return_value=summary)
        monkeypatch.setattr("commithabit.cli.run_with_services", runner)

        code = cli.main(["--database-url", "sqlite+aiosqlite://", "run-daily"])

        assert code == 0, "expected success"
        printed = json.loads(capsys.readouterr().out)
        assert printed["processed"] == 0, "expected summary counts"
        assert runner.await_args.args[1] is cli.run_daily, "runs the daily batch"

    def test_missing_database_url_is_usage_error(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without a URL the parser exits with status 2."""
        monkeypatch.delenv("COMMITHABIT_DATABASE_URL", raising=False)

        with pytest.raises(SystemExit) as excinfo:
            cli.main(["run-daily"])

        assert excinfo.value.code == 2, "expected usage error"

    def test_database_url_from_environment(
        self, monkeypatch: pytest.MonkeyPatch, database_url: str
    ) -> None:
        """COMMITHABIT_DATABASE_URL is the default URL."""
        monkeypatch.setenv("COMMITHABIT_DATABASE_URL", database_url)

        assert cli.main(["init-db"]) == 0, "expected success from env URL"
