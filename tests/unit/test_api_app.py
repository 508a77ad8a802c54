"""Unit tests for commithabit.api.app application factory.

Usage
-----
Run with pytest::

    pytest tests/unit/test_api_app.py

"""

from __future__ import annotations

import datetime as dt
import json
import typing as typ
from unittest import mock

import falcon
import falcon.asgi
import falcon.testing
import pytest
from sqlalchemy.exc import OperationalError

from commithabit.api.app import AppDependencies, create_app
from commithabit.api.config import ApiConfig
from commithabit.orchestrator import BatchSummary
from commithabit.webhooks import WebhookIngester, compute_signature

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from commithabit.audit import AuditTrail
    from commithabit.registry import InstallationRegistry

NOW = dt.datetime(2026, 3, 2, 6, 0, tzinfo=dt.UTC)
CONFIG = ApiConfig(
    webhook_secret="hook-secret",
    scheduler_secret="cron-secret",
    admin_token="admin-token",
)


def _mock_session_factory(
    execute_side_effect: BaseException | None = None,
) -> mock.MagicMock:
    """Return a session factory whose sessions work as async context managers."""
    session = mock.MagicMock()
    session.execute = mock.AsyncMock(side_effect=execute_side_effect)
    context = mock.MagicMock()
    context.__aenter__.return_value = session
    context.__aexit__.return_value = False
    return mock.MagicMock(return_value=context)


@pytest.fixture
def deps() -> AppDependencies:
    """Build AppDependencies with mock objects."""
    orchestrator = mock.MagicMock()
    orchestrator.run_daily = mock.AsyncMock(
        return_value=BatchSummary.from_outcomes([], started_at=NOW, finished_at=NOW)
    )
    return AppDependencies(
        session_factory=_mock_session_factory(),
        registry=mock.MagicMock(),
        audit=mock.MagicMock(),
        orchestrator=orchestrator,
        ingester=mock.MagicMock(),
        api_config=CONFIG,
    )


@pytest.fixture
def health_client() -> falcon.testing.TestClient:
    """Build a test client for health-only mode."""
    return falcon.testing.TestClient(create_app())


@pytest.fixture
def full_client(deps: AppDependencies) -> falcon.testing.TestClient:
    """Build a test client with full domain dependencies."""
    return falcon.testing.TestClient(create_app(deps))


class TestCreateAppHealthOnly:
    """Tests for create_app() without domain dependencies."""

    def test_returns_falcon_app(self) -> None:
        """Create_app() returns a Falcon ASGI App."""
        app = create_app()
        assert isinstance(app, falcon.asgi.App), "expected Falcon ASGI App"

    def test_has_health_route(self, health_client: falcon.testing.TestClient) -> None:
        """Health-only app responds to /health."""
        result = health_client.simulate_get("/health")
        assert result.status == falcon.HTTP_200, "expected HTTP 200 from /health"
        assert result.json == {"status": "ok"}, "wrong /health body"

    def test_has_ready_route(self, health_client: falcon.testing.TestClient) -> None:
        """Health-only app responds to /ready."""
        result = health_client.simulate_get("/ready")
        assert result.status == falcon.HTTP_200, "expected HTTP 200 from /ready"
        assert result.json == {"status": "ready"}, "wrong /ready body"

    @pytest.mark.parametrize(
        "path", ["/webhooks/github", "/jobs/daily", "/admin/audit"]
    )
    def test_domain_endpoints_not_registered(
        self, health_client: falcon.testing.TestClient, path: str
    ) -> None:
        """Without deps, domain endpoints return 404."""
        result = health_client.simulate_post(path)
        assert result.status == falcon.HTTP_404, f"expected HTTP 404 for {path}"

    def test_partial_deps_stay_health_only(self) -> None:
        """Missing any one service keeps the app in health-only mode."""
        client = falcon.testing.TestClient(
            create_app(AppDependencies(registry=mock.MagicMock()))
        )
        result = client.simulate_post("/jobs/daily")
        assert result.status == falcon.HTTP_404, "expected HTTP 404"


class TestCreateAppWithDeps:
    """Tests for create_app() with full domain dependencies."""

    def test_has_ready_route(self, full_client: falcon.testing.TestClient) -> None:
        """The readiness probe pings the database."""
        result = full_client.simulate_get("/ready")
        assert result.status == falcon.HTTP_200, "expected HTTP 200 from /ready"

    def test_ready_reports_database_failure(self) -> None:
        """A failing database makes the probe return 503."""
        factory = _mock_session_factory(
            OperationalError("SELECT 1", {}, Exception("down"))
        )
        client = falcon.testing.TestClient(
            create_app(AppDependencies(session_factory=factory))
        )

        result = client.simulate_get("/ready")

        assert result.status == falcon.HTTP_503, "expected HTTP 503"
        assert result.json == {"status": "unavailable"}, "wrong /ready body"

    def test_daily_trigger_requires_secret(
        self, full_client: falcon.testing.TestClient, deps: AppDependencies
    ) -> None:
        """The scheduler trigger is guarded by the bearer secret."""
        result = full_client.simulate_post("/jobs/daily")

        assert result.status == falcon.HTTP_401, "expected HTTP 401"
        assert result.json["code"] == "AUTH_001", "expected unauthorised code"
        orchestrator = typ.cast("mock.MagicMock", deps.orchestrator)
        orchestrator.run_daily.assert_not_awaited()

    def test_daily_trigger_returns_summary(
        self, full_client: falcon.testing.TestClient
    ) -> None:
        """An authorised trigger returns the batch summary."""
        result = full_client.simulate_post(
            "/jobs/daily", headers={"Authorization": "Bearer cron-secret"}
        )

        assert result.status == falcon.HTTP_200, "expected HTTP 200"
        assert result.json["committed"] == 0, "expected summary counts"

    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("GET", "/admin/audit"),
            ("PATCH", "/admin/installations/abc"),
            ("POST", "/admin/installations/abc/commit"),
        ],
    )
    def test_admin_endpoints_require_token(
        self, full_client: falcon.testing.TestClient, method: str, path: str
    ) -> None:
        """Every admin endpoint refuses requests without the admin token."""
        result = full_client.simulate_request(
            method, path, headers={"Authorization": "Bearer cron-secret"}
        )
        assert result.status == falcon.HTTP_401, f"expected 401 for {method} {path}"


class TestWebhookEndToEnd:
    """Signed deliveries through the ASGI stack against sqlite."""

    @pytest.mark.asyncio
    async def test_signed_delivery_enrols_repository(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: InstallationRegistry,
        audit: AuditTrail,
    ) -> None:
        """A valid delivery is applied; a tampered one is refused."""
        app = create_app(
            AppDependencies(
                session_factory=session_factory,
                registry=registry,
                audit=audit,
                orchestrator=mock.MagicMock(),
                ingester=WebhookIngester(registry, audit),
                api_config=CONFIG,
            )
        )
        body = json.dumps(
            {
                "action": "created",
                "installation": {"id": 101, "account": {"id": 42}},
                "repositories": [{"id": 1, "full_name": "octo/reef"}],
            }
        ).encode()
        headers = {
            "Content-Type": "application/json",
            "X-GitHub-Event": "installation",
            "X-GitHub-Delivery": "d-1",
        }

        async with falcon.testing.ASGIConductor(app) as conductor:
            refused = await conductor.simulate_post(
                "/webhooks/github",
                body=body,
                headers={**headers, "X-Hub-Signature-256": "sha256=" + "0" * 64},
            )
            accepted = await conductor.simulate_post(
                "/webhooks/github",
                body=body,
                headers={
                    **headers,
                    "X-Hub-Signature-256": compute_signature(body, "hook-secret"),
                },
            )

        assert refused.status == falcon.HTTP_401, "bad signature is refused"
        assert accepted.status == falcon.HTTP_200, "good signature is accepted"
        assert accepted.json["outcome"] == "applied", "the delivery is applied"
        assert [row.repo_full_name for row in await registry.list_active()] == [
            "octo/reef"
        ], "the repository is enrolled"
