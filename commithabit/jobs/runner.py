"""Run one unit of work against a freshly wired service graph.

Each actor invocation and CLI command calls ``asyncio.run`` and so gets its
own event loop; the engine and HTTP client are therefore created and
disposed per run instead of being cached across loops.
"""

from __future__ import annotations

import typing as typ

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from commithabit.api.factory import build_services
from commithabit.common.storage import init_storage

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from commithabit.api.factory import ServiceGraph
    from commithabit.orchestrator.models import BatchSummary


async def run_with_services[T](
    database_url: str,
    work: cabc.Callable[[ServiceGraph], cabc.Awaitable[T]],
    *,
    create_schema: bool = False,
) -> T:
    """Build services for *database_url*, await *work*, then clean up.

    Parameters
    ----------
    database_url
        SQLAlchemy async URL, e.g. ``postgresql+asyncpg://...``.
    work
        Coroutine function receiving the wired services.
    create_schema
        Create missing tables before running *work*.

    """
    engine = create_async_engine(database_url)
    try:
        if create_schema:
            await init_storage(engine)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        services = build_services(session_factory)
        try:
            return await work(services)
        finally:
            await services.aclose()
    finally:
        await engine.dispose()


async def run_daily(services: ServiceGraph) -> BatchSummary:
    """Run the daily batch with *services*."""
    return await services.orchestrator.run_daily()


async def purge_audit(services: ServiceGraph) -> int:
    """Delete audit entries older than the retention window."""
    return await services.audit.purge_expired()
