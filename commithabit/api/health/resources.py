"""Health probe resources for liveness and readiness checks.

``HealthResource`` is stateless. ``ReadyResource`` pings the database when
it is given a session factory, so a deployment without a database still
reports ready.

Usage
-----
Register health endpoints on the Falcon app::

    from commithabit.api.health.resources import HealthResource, ReadyResource

    app.add_route("/health", HealthResource())
    app.add_route("/ready", ReadyResource(session_factory))

"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from commithabit.logging import get_logger, log_warning

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

__all__ = ["HealthResource", "ReadyResource"]

logger = get_logger(__name__)


class HealthResource:
    """Liveness probe resource returning ``{"status": "ok"}``.

    Always responds with HTTP 200 to indicate the process is alive.

    """

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /health requests.

        Parameters
        ----------
        _req
            Falcon request (unused).
        resp
            Falcon response populated with liveness status.

        """
        resp.media = {"status": "ok"}
        resp.status = HTTPStatus.OK


class ReadyResource:
    """Readiness probe resource.

    Responds ``{"status": "ready"}`` with HTTP 200, or
    ``{"status": "unavailable"}`` with HTTP 503 when the database does not
    answer.

    """

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession] | None = None
    ) -> None:
        """Optionally bind the probe to a database."""
        self._session_factory = session_factory

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /ready requests.

        Parameters
        ----------
        _req
            Falcon request (unused).
        resp
            Falcon response populated with readiness status.

        """
        if self._session_factory is not None:
            try:
                async with self._session_factory() as session:
                    await session.execute(text("SELECT 1"))
            except (SQLAlchemyError, OSError) as exc:
                log_warning(logger, "Readiness check failed: %s", exc)
                resp.media = {"status": "unavailable"}
                resp.status = HTTPStatus.SERVICE_UNAVAILABLE
                return
        resp.media = {"status": "ready"}
        resp.status = HTTPStatus.OK
