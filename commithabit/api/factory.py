"""Assemble the service graph from environment configuration.

The HTTP runtime, the Dramatiq actors and the CLI all build their
collaborators here so they share one wiring.

Usage
-----
Build services for a session factory::

    from commithabit.api.factory import build_services

    services = build_services(session_factory)
    try:
        summary = await services.orchestrator.run_daily()
    finally:
        await services.aclose()

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from commithabit.api.config import ApiConfig
from commithabit.audit.config import AuditConfig
from commithabit.audit.service import AuditTrail
from commithabit.credentials.broker import CredentialBroker
from commithabit.github.client import GitHubRestClient
from commithabit.github.config import GitHubAppConfig
from commithabit.orchestrator.config import OrchestratorConfig
from commithabit.orchestrator.service import CommitOrchestrator
from commithabit.registry.config import RegistryConfig
from commithabit.registry.service import InstallationRegistry
from commithabit.webhooks.service import WebhookIngester

if typ.TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

__all__ = ["ServiceGraph", "build_services"]


@dc.dataclass(frozen=True, slots=True)
class ServiceGraph:
    """Every long-lived collaborator of one process.

    Attributes
    ----------
    registry
        Installation state.
    audit
        Audit trail.
    broker
        Installation token cache.
    github
        GitHub REST client; owns an HTTP connection pool.
    orchestrator
        Daily and on-demand commit workflow.
    ingester
        Webhook lifecycle handling.
    api_config
        Secrets for the HTTP surface.

    """

    registry: InstallationRegistry
    audit: AuditTrail
    broker: CredentialBroker
    github: GitHubRestClient
    orchestrator: CommitOrchestrator
    ingester: WebhookIngester
    api_config: ApiConfig

    async def aclose(self) -> None:
        """Release the GitHub client's connections."""
        await self.github.aclose()


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    http_client: httpx.AsyncClient | None = None,
) -> ServiceGraph:
    """Build a :class:`ServiceGraph` from ``COMMITHABIT_*`` variables.

    Parameters
    ----------
    session_factory
        Async session factory for database access.
    http_client
        Optional pre-configured client for GitHub calls, mainly for tests.

    Returns
    -------
    ServiceGraph
        Wired services sharing one credential broker.

    Raises
    ------
    ConfigurationError
        If a configured value is invalid. A missing GitHub App identity is
        not an error here; the daily run refuses to start instead.

    """
    github_config = GitHubAppConfig.from_env()
    github = GitHubRestClient(github_config, http_client=http_client)
    broker = CredentialBroker(github_config, github)
    registry = InstallationRegistry(session_factory, RegistryConfig.from_env())
    audit = AuditTrail(session_factory, AuditConfig.from_env())
    orchestrator = CommitOrchestrator(
        registry=registry,
        broker=broker,
        github=github,
        audit=audit,
        config=OrchestratorConfig.from_env(),
    )
    ingester = WebhookIngester(registry, audit, on_revoked=broker.invalidate)
    return ServiceGraph(
        registry=registry,
        audit=audit,
        broker=broker,
        github=github,
        orchestrator=orchestrator,
        ingester=ingester,
        api_config=ApiConfig.from_env(),
    )
