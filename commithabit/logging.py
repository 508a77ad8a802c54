"""Thin wrappers that hand femtologging finished strings.

femtologging records take a message, not a template plus arguments, so
every helper here interpolates its percent-style template before the
call. Webhook and commit event loggers build on these helpers.

Example:
>>> from commithabit.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "Committed to %s (%s)", "octo/reef", "a1b2c3")

"""

from __future__ import annotations

import enum
import typing as typ

from femtologging import basicConfig, get_logger


class LogLevel(enum.StrEnum):
    """Level names accepted by ``basicConfig`` and ``Logger.log``."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_DEFAULT_LEVEL = LogLevel.INFO


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Map an environment value onto a femtologging level name.

    Parameters
    ----------
    level : str | None
        Value of ``COMMITHABIT_LOG_LEVEL`` or a CLI flag; case-insensitive.

    Returns
    -------
    tuple[str, bool]
        The level to use, and True when *level* was blank or unknown and
        ``INFO`` was substituted.

    """
    if not level or not level.strip():
        return (_DEFAULT_LEVEL.value, True)

    candidate = level.strip().upper()
    if candidate in LogLevel.__members__:
        return (candidate, False)
    return (_DEFAULT_LEVEL.value, True)


def configure_logging(level: str, *, force: bool = False) -> tuple[str, bool]:
    """Set up femtologging at *level*; see :func:`normalize_log_level`."""
    normalized, invalid = normalize_log_level(level)
    basicConfig(level=normalized, force=force)
    return (normalized, invalid)


class _SupportsLog(typ.Protocol):
    """Structural type for femtologging loggers and test doubles."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def format_log_message(template: str, *args: object) -> str:
    """Return *template* % *args*, or *template* untouched without args."""
    return template % args if args else template


def _emit(
    logger: _SupportsLog,
    level: LogLevel,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None,
) -> None:
    logger.log(
        level.value,
        format_log_message(template, *args),
        exc_info=exc_info,
        stack_info=False,
    )


def log_debug(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Record diagnostic detail."""
    _emit(logger, LogLevel.DEBUG, template, args, exc_info)


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Record routine progress such as a finished batch.

    Parameters
    ----------
    logger : _SupportsLog
        Logger from :func:`get_logger`.
    template : str
        Message with ``%s``/``%d`` placeholders.
    *args : object
        Placeholder values, applied before femtologging sees the record.
    exc_info : object | None, optional
        Exception to attach, if any.

    """
    _emit(logger, LogLevel.INFO, template, args, exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Record a recoverable problem, such as a retried GitHub call."""
    _emit(logger, LogLevel.WARNING, template, args, exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Record a failure that changed an outcome."""
    _emit(logger, LogLevel.ERROR, template, args, exc_info)


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Record an unexpected exception with its traceback.

    Parameters
    ----------
    logger : _SupportsLog
        Destination logger.
    message : str
        Finished text; no interpolation is applied.
    exc : BaseException
        Attached as ``exc_info``.

    """
    logger.log(LogLevel.ERROR.value, message, exc_info=exc, stack_info=False)


__all__ = [
    "LogLevel",
    "configure_logging",
    "format_log_message",
    "get_logger",
    "log_debug",
    "log_error",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
