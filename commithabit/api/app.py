"""Application factory for the commithabit Falcon ASGI application.

This module provides ``create_app()`` which builds the Falcon ASGI
application with health endpoints and, when services are available, the
webhook receiver, scheduler trigger and admin endpoints.

Usage
-----
Create a health-only app (no database)::

    app = create_app()

Create a full app::

    from commithabit.api.app import AppDependencies, create_app
    from commithabit.api.factory import build_services

    services = build_services(session_factory)
    app = create_app(AppDependencies.from_services(services, session_factory))

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon.asgi

from commithabit.api.config import ApiConfig
from commithabit.api.errors import handle_commithabit_error
from commithabit.api.health.resources import HealthResource, ReadyResource
from commithabit.errors import CommitHabitError

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from commithabit.api.factory import ServiceGraph
    from commithabit.audit.service import AuditTrail
    from commithabit.orchestrator.service import CommitOrchestrator
    from commithabit.registry.service import InstallationRegistry
    from commithabit.webhooks.service import WebhookIngester

__all__ = ["AppDependencies", "create_app"]


@dc.dataclass(frozen=True, slots=True)
class AppDependencies:
    """Dependencies for the Falcon ASGI application.

    When ``registry``, ``audit``, ``orchestrator`` and ``ingester`` are all
    provided the application registers the domain endpoints. Otherwise only
    health endpoints are registered.

    Attributes
    ----------
    session_factory
        Async session factory; enables the database readiness check.
    registry
        Installation state store.
    audit
        Audit trail.
    orchestrator
        Daily and on-demand commit workflow.
    ingester
        Webhook lifecycle handling.
    api_config
        Shared secrets for the guarded endpoints.

    """

    session_factory: async_sessionmaker[AsyncSession] | None = None
    registry: InstallationRegistry | None = None
    audit: AuditTrail | None = None
    orchestrator: CommitOrchestrator | None = None
    ingester: WebhookIngester | None = None
    api_config: ApiConfig = dc.field(default_factory=ApiConfig)

    @classmethod
    def from_services(
        cls,
        services: ServiceGraph,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> AppDependencies:
        """Build dependencies from a wired :class:`ServiceGraph`."""
        return cls(
            session_factory=session_factory,
            registry=services.registry,
            audit=services.audit,
            orchestrator=services.orchestrator,
            ingester=services.ingester,
            api_config=services.api_config,
        )


def _has_domain_deps(deps: AppDependencies | None) -> bool:
    """Return True when deps provide every domain service."""
    return (
        deps is not None
        and deps.registry is not None
        and deps.audit is not None
        and deps.orchestrator is not None
        and deps.ingester is not None
    )


def _add_domain_routes(app: falcon.asgi.App, deps: AppDependencies) -> None:
    from commithabit.api.admin.resources import (
        AdminResourceDependencies,
        AuditLogResource,
        InstallationCommitResource,
        InstallationResource,
    )
    from commithabit.api.jobs.resources import DailyJobResource
    from commithabit.api.webhooks.resources import WebhookResource

    # _has_domain_deps guarantees non-None; cast to satisfy the type checker.
    registry = typ.cast("InstallationRegistry", deps.registry)
    audit = typ.cast("AuditTrail", deps.audit)
    orchestrator = typ.cast("CommitOrchestrator", deps.orchestrator)
    ingester = typ.cast("WebhookIngester", deps.ingester)
    config = deps.api_config

    app.add_route(
        "/webhooks/github",
        WebhookResource(ingester, secret=config.webhook_secret),
    )
    app.add_route(
        "/jobs/daily",
        DailyJobResource(orchestrator, secret=config.scheduler_secret),
    )

    admin = AdminResourceDependencies(
        registry=registry,
        audit=audit,
        orchestrator=orchestrator,
        admin_token=config.admin_token,
    )
    app.add_route("/admin/audit", AuditLogResource(admin))
    app.add_route(
        "/admin/installations/{installation_id}", InstallationResource(admin)
    )
    app.add_route(
        "/admin/installations/{installation_id}/commit",
        InstallationCommitResource(admin),
    )


def create_app(
    dependencies: AppDependencies | None = None,
) -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    Parameters
    ----------
    dependencies
        Optional application dependencies. When ``None`` or incomplete,
        only ``/health`` and ``/ready`` are available.

    Returns
    -------
    falcon.asgi.App
        Configured Falcon ASGI application.

    """
    app = falcon.asgi.App()

    session_factory = dependencies.session_factory if dependencies else None
    app.add_route("/health", HealthResource())
    app.add_route("/ready", ReadyResource(session_factory))

    if _has_domain_deps(dependencies) and dependencies is not None:
        _add_domain_routes(app, dependencies)

    app.add_error_handler(CommitHabitError, handle_commithabit_error)

    return app
