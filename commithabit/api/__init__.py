"""commithabit HTTP API layer.

This package provides the Falcon Asynchronous Server Gateway Interface
(ASGI) application: the webhook receiver, the scheduler trigger, the
admin endpoints and the health probes. Request logic lives in
:mod:`commithabit.api.handlers` as plain functions.

Usage
-----
Create and run the application::

    from commithabit.api import create_app

    app = create_app()              # health-only mode
    app = create_app(dependencies)  # full mode with domain endpoints

Public API
----------
create_app
    Application factory that configures the Falcon ASGI app with
    health endpoints and optionally with domain endpoints when
    services are provided.
"""

from commithabit.api.app import create_app

__all__ = ["create_app"]
