"""Administrator endpoints: audit query, pause/resume and manual commit.

All three require ``Authorization: Bearer <admin token>``.

Usage
-----
Register the resources on the Falcon app::

    deps = AdminResourceDependencies(
        registry=registry,
        audit=audit,
        orchestrator=orchestrator,
        admin_token=api_config.admin_token,
    )
    app.add_route("/admin/audit", AuditLogResource(deps))
    app.add_route("/admin/installations/{installation_id}", InstallationResource(deps))
    app.add_route(
        "/admin/installations/{installation_id}/commit",
        InstallationCommitResource(deps),
    )

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from commithabit.api.handlers import (
    handle_audit_query,
    handle_manual_commit,
    handle_set_active,
)

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from commithabit.audit.service import AuditTrail
    from commithabit.orchestrator.service import CommitOrchestrator
    from commithabit.registry.service import InstallationRegistry

__all__ = [
    "AdminResourceDependencies",
    "AuditLogResource",
    "InstallationCommitResource",
    "InstallationResource",
]


@dc.dataclass(frozen=True, slots=True)
class AdminResourceDependencies:
    """Collaborators shared by the admin resources.

    Attributes
    ----------
    registry
        Installation state store.
    audit
        Audit trail queried and appended to.
    orchestrator
        Runs the commit workflow on demand.
    admin_token
        Bearer token required on every admin request.

    """

    registry: InstallationRegistry
    audit: AuditTrail
    orchestrator: CommitOrchestrator
    admin_token: str = dc.field(repr=False)


class AuditLogResource:
    """``GET /admin/audit`` returns one filtered page of the audit trail."""

    def __init__(self, dependencies: AdminResourceDependencies) -> None:
        """Configure the resource with its dependencies."""
        self._deps = dependencies

    async def on_get(self, req: Request, resp: Response) -> None:
        """Handle GET /admin/audit.

        Parameters
        ----------
        req
            Falcon request; filters and pagination come from the query
            string.
        resp
            Falcon response receiving the page or an error body.

        """
        result = await handle_audit_query(
            req.get_header("Authorization"),
            req.params,
            audit=self._deps.audit,
            admin_token=self._deps.admin_token,
        )
        resp.status = result.status
        resp.media = result.body


class InstallationResource:
    """``PATCH /admin/installations/{installation_id}`` pauses or resumes."""

    def __init__(self, dependencies: AdminResourceDependencies) -> None:
        """Configure the resource with its dependencies."""
        self._deps = dependencies

    async def on_patch(
        self, req: Request, resp: Response, *, installation_id: str
    ) -> None:
        """Handle PATCH with body ``{"active": bool}``."""
        body = await req.get_media(default_when_empty=None)
        result = await handle_set_active(
            req.get_header("Authorization"),
            installation_id,
            body if isinstance(body, dict) else None,
            registry=self._deps.registry,
            audit=self._deps.audit,
            admin_token=self._deps.admin_token,
        )
        resp.status = result.status
        resp.media = result.body


class InstallationCommitResource:
    """``POST /admin/installations/{installation_id}/commit`` runs one workflow."""

    def __init__(self, dependencies: AdminResourceDependencies) -> None:
        """Configure the resource with its dependencies."""
        self._deps = dependencies

    async def on_post(
        self, req: Request, resp: Response, *, installation_id: str
    ) -> None:
        """Handle POST and return the installation's outcome."""
        result = await handle_manual_commit(
            req.get_header("Authorization"),
            installation_id,
            orchestrator=self._deps.orchestrator,
            admin_token=self._deps.admin_token,
        )
        resp.status = result.status
        resp.media = result.body
