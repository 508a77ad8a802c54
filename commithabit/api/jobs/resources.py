"""Scheduler trigger for the daily commit run.

Usage
-----
Register the resource on the Falcon app::

    app.add_route(
        "/jobs/daily",
        DailyJobResource(orchestrator, secret=api_config.scheduler_secret),
    )

"""

from __future__ import annotations

import typing as typ

from commithabit.api.handlers import handle_daily_trigger

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from commithabit.orchestrator.service import CommitOrchestrator

__all__ = ["DailyJobResource"]


class DailyJobResource:
    """``POST /jobs/daily`` runs the batch and returns its summary."""

    def __init__(self, orchestrator: CommitOrchestrator, *, secret: str) -> None:
        """Configure the resource with the orchestrator and shared secret."""
        self._orchestrator = orchestrator
        self._secret = secret

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle POST /jobs/daily."""
        result = await handle_daily_trigger(
            req.get_header("Authorization"),
            orchestrator=self._orchestrator,
            secret=self._secret,
        )
        resp.status = result.status
        resp.media = result.body
