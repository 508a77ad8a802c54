"""Background jobs: Dramatiq actors and the shared service runner.

The actors live in :mod:`commithabit.jobs.actors` and are not imported
here, so the CLI can use the runner without a Dramatiq broker.

Public API
----------
run_with_services
    Build the service graph for a database URL and run one coroutine.

"""

from commithabit.jobs.runner import purge_audit, run_daily, run_with_services

__all__ = ["purge_audit", "run_daily", "run_with_services"]
