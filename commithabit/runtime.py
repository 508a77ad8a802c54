"""Granian process entrypoint for the commithabit HTTP service.

``commithabit.runtime:create_app`` is the factory Granian loads. Its shape
depends on one variable:

- with ``COMMITHABIT_DATABASE_URL`` the app serves GitHub webhooks, the
  scheduler trigger and the admin endpoints next to the probes;
- without it only ``/health`` and ``/ready`` answer, which lets a container
  pass its probes before the database exists.

Tables are not created here; run ``commithabit init-db`` once per database.

Process settings read by :func:`main`:

``COMMITHABIT_HOST``
    Interface to bind, ``0.0.0.0`` unless set.
``COMMITHABIT_PORT``
    TCP port, ``8080`` unless set. Values outside 1..65535 abort start-up.
``COMMITHABIT_LOG_LEVEL``
    femtologging level; unknown names fall back to ``INFO`` with a warning.

Start a server with ``python -m commithabit.runtime`` or the
``commithabit-runtime`` script.
"""

from __future__ import annotations

import dataclasses
import os
import typing as typ

from commithabit.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import falcon.asgi

__all__ = ["create_app", "main"]

logger = get_logger(__name__)

_PORT_RANGE = range(1, 65536)


def _parse_port(raw: str) -> int:
    """Return *raw* as a TCP port or terminate the process.

    Raises
    ------
    SystemExit
        With status 1 when *raw* is not an integer in 1..65535.

    """
    try:
        port = int(raw)
    except ValueError:
        port = None
    if port is None or port not in _PORT_RANGE:
        log_error(
            logger,
            "Refusing to start: COMMITHABIT_PORT=%r is not a port in %d..%d",
            raw,
            _PORT_RANGE.start,
            _PORT_RANGE.stop - 1,
        )
        raise SystemExit(1)
    return port


@dataclasses.dataclass(frozen=True, slots=True)
class _ServerSettings:
    host: str
    port: int
    log_level: str

    @classmethod
    def from_env(cls) -> _ServerSettings:
        return cls(
            host=os.environ.get("COMMITHABIT_HOST", "0.0.0.0"),  # noqa: S104
            port=_parse_port(os.environ.get("COMMITHABIT_PORT", "8080")),
            log_level=os.environ.get("COMMITHABIT_LOG_LEVEL", "INFO"),
        )


def create_app() -> falcon.asgi.App:
    """Build the ASGI app Granian serves.

    Returns
    -------
    falcon.asgi.App
        The probe-only app when no database URL is configured, otherwise
        the app wired to a fresh service graph.

    """
    from commithabit.api.app import create_app as build_api

    database_url = os.environ.get("COMMITHABIT_DATABASE_URL")
    if not database_url:
        log_warning(
            logger,
            "No COMMITHABIT_DATABASE_URL; webhook, scheduler and admin routes "
            "are disabled",
        )
        return build_api()

    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from commithabit.api.app import AppDependencies
    from commithabit.api.factory import build_services

    session_factory = async_sessionmaker(
        create_async_engine(database_url), expire_on_commit=False
    )
    dependencies = AppDependencies.from_services(
        build_services(session_factory), session_factory
    )
    return build_api(dependencies)


def main() -> None:
    """Configure logging and serve :func:`create_app` with Granian."""
    from granian import Granian
    from granian.constants import Interfaces

    settings = _ServerSettings.from_env()
    level, replaced = configure_logging(settings.log_level)
    if replaced:
        log_warning(
            logger,
            "Unknown COMMITHABIT_LOG_LEVEL %r; logging at %s",
            settings.log_level,
            level,
        )
    log_info(
        logger,
        "commithabit listening on %s:%d, log level %s",
        settings.host,
        settings.port,
        level,
    )

    Granian(
        "commithabit.runtime:create_app",
        address=settings.host,
        port=settings.port,
        interface=Interfaces.ASGI,
        factory=True,
    ).serve()


if __name__ == "__main__":
    main()
