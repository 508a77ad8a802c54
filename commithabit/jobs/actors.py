"""Dramatiq actors for the scheduled daily run and the retention sweep.

Usage
-----
Queue today's run:

>>> run_daily_job.send(database_url="postgresql+asyncpg://...")

Queue the audit retention sweep:

>>> purge_audit_log_job.send(database_url="postgresql+asyncpg://...")

"""

from __future__ import annotations

import asyncio
import typing as typ

import dramatiq

from commithabit.jobs._broker import ensure_broker_configured
from commithabit.jobs.runner import purge_audit, run_daily, run_with_services

# The actor decorator resolves the broker at import time.
ensure_broker_configured()


@dramatiq.actor(max_retries=0)
def run_daily_job(database_url: str) -> dict[str, typ.Any]:
    """Run the daily keep-alive batch once.

    Not retried by Dramatiq: a failed start (configuration, storage or an
    overlapping run) is fixed by the next scheduled trigger, and the
    batch itself is idempotent per UTC day.

    Parameters
    ----------
    database_url
        SQLAlchemy URL for the database.

    Returns
    -------
    dict[str, Any]
        Aggregate counts of the run.

    """
    ensure_broker_configured()
    summary = asyncio.run(run_with_services(database_url, run_daily))
    return summary.counts()


@dramatiq.actor
def purge_audit_log_job(database_url: str) -> int:
    """Delete audit entries older than ``COMMITHABIT_AUDIT_RETENTION_DAYS``.

    Returns the number of entries deleted.
    """
    ensure_broker_configured()
    return asyncio.run(run_with_services(database_url, purge_audit))
