"""Falcon error handler for classified failures.

Handlers in :mod:`commithabit.api.handlers` already turn expected failures
into result values. This handler covers anything classified that escapes a
resource, such as a storage failure while reading a request.

Usage
-----
Register the handler on the Falcon app::

    from commithabit.api.errors import handle_commithabit_error
    from commithabit.errors import CommitHabitError

    app.add_error_handler(CommitHabitError, handle_commithabit_error)

"""

from __future__ import annotations

import typing as typ

from commithabit.logging import get_logger, log_error, log_warning

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from commithabit.errors import CommitHabitError

__all__ = ["handle_commithabit_error"]

logger = get_logger(__name__)

_SERVER_ERROR = 500


async def handle_commithabit_error(
    req: Request,
    resp: Response,
    ex: CommitHabitError,
    _params: dict[str, typ.Any],
) -> None:
    """Map a ``CommitHabitError`` to a JSON response with its status.

    Parameters
    ----------
    req
        Falcon request, used for the logged path.
    resp
        Falcon response whose status and media are set.
    ex
        The classified failure.
    _params
        URI template parameters (unused).

    """
    log = log_error if ex.status_code >= _SERVER_ERROR else log_warning
    log(
        logger,
        "Request %s %s failed: kind=%s code=%s message=%s",
        req.method,
        req.path,
        ex.kind,
        ex.code,
        ex.message,
    )
    resp.status = ex.status_code
    resp.media = {
        "title": ex.kind.value.replace("_", " ").capitalize() + " error",
        "description": ex.message,
        "code": ex.code,
        "kind": ex.kind.value,
    }
