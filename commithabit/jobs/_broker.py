"""Dramatiq broker bootstrap for the commithabit actors.

:mod:`commithabit.jobs.actors` calls :func:`ensure_broker_configured`
before declaring its actors, because the decorator resolves the broker.
The package itself does not import the actors, so the CLI never touches
Dramatiq's global broker.
"""

from __future__ import annotations

import os
import sys
import threading

import dramatiq
from dramatiq.brokers.stub import StubBroker

from commithabit.common.env import read_str

ALLOW_STUB_ENV = "COMMITHABIT_ALLOW_STUB_BROKER"

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_PYTEST_ENV_VARS = ("PYTEST_CURRENT_TEST", "PYTEST_XDIST_WORKER")

_lock = threading.Lock()
_configured = False


def _under_pytest() -> bool:
    return "pytest" in sys.modules or any(key in os.environ for key in _PYTEST_ENV_VARS)


def stub_broker_allowed() -> bool:
    """Return True when a StubBroker may stand in for a real broker.

    That is the case under pytest or when ``COMMITHABIT_ALLOW_STUB_BROKER``
    is truthy, which local CLI runs use.
    """
    return read_str(ALLOW_STUB_ENV).lower() in _TRUTHY or _under_pytest()


def _current_broker() -> dramatiq.Broker | None:
    try:
        return dramatiq.get_broker()
    except (ImportError, LookupError):
        # No broker set and the default RabbitMQ dependencies are absent.
        return None


def ensure_broker_configured() -> None:
    """Make sure Dramatiq has a broker before an actor body runs.

    Idempotent and safe to call from several worker threads at once.

    Raises
    ------
    RuntimeError
        If no broker is configured and a stub is not allowed.

    """
    global _configured  # noqa: PLW0603

    if _configured:
        return
    with _lock:
        if _configured:
            return
        if _current_broker() is None:
            if not stub_broker_allowed():
                message = (
                    "No Dramatiq broker configured. Set "
                    f"{ALLOW_STUB_ENV}=1 for local runs or configure a broker."
                )
                raise RuntimeError(message)
            dramatiq.set_broker(StubBroker())
        _configured = True
