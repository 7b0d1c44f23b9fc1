"""femtologging helpers shared by pushwatch services.

Every structured event in pushwatch is rendered once, with percent-style
interpolation, and handed to femtologging as a finished string. Keeping the
formatting here means services never pass lazy arguments to the logger.

Example:
>>> from pushwatch.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "[%s] remaining=%d", "ratelimit.updated", 42)

"""

from __future__ import annotations

import enum
import typing as typ

from femtologging import basicConfig, get_logger


class LogLevel(enum.StrEnum):
    """Log levels understood by femtologging."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_DEFAULT_LEVEL = LogLevel.INFO.value


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Return ``(level, invalid)`` for a raw ``PUSHWATCH_LOG_LEVEL`` value.

    Unknown or empty values fall back to ``INFO`` and set ``invalid`` so the
    caller can warn once logging is configured.
    """
    if not level:
        return (_DEFAULT_LEVEL, True)

    candidate = level.strip().upper()
    if candidate in LogLevel.__members__:
        return (candidate, False)
    return (_DEFAULT_LEVEL, True)


def configure_logging(level: str | None, *, force: bool = False) -> tuple[str, bool]:
    """Install the femtologging root configuration.

    Parameters
    ----------
    level : str | None
        Raw level string, usually taken from the environment.
    force : bool, optional
        Replace handlers installed by an earlier call.

    Returns
    -------
    tuple[str, bool]
        The level actually applied and whether the input was rejected.

    """
    applied, invalid = normalize_log_level(level)
    basicConfig(level=applied, force=force)
    return (applied, invalid)


def format_log_message(template: str, *args: object) -> str:
    """Interpolate ``args`` into ``template`` using ``%`` formatting."""
    return template % args if args else template


class _SupportsLog(typ.Protocol):
    """The subset of the femtologging logger API used here."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: LogLevel,
    message: str,
    *,
    exc_info: object | None = None,
) -> None:
    logger.log(level.value, message, exc_info=exc_info, stack_info=False)


def log_debug(logger: _SupportsLog, template: str, *args: object) -> None:
    """Emit a DEBUG message."""
    _emit(logger, LogLevel.DEBUG, format_log_message(template, *args))


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit an INFO message."""
    _emit(logger, LogLevel.INFO, format_log_message(template, *args), exc_info=exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit a WARNING message."""
    _emit(
        logger, LogLevel.WARNING, format_log_message(template, *args), exc_info=exc_info
    )


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit an ERROR message, optionally carrying exception details."""
    _emit(
        logger, LogLevel.ERROR, format_log_message(template, *args), exc_info=exc_info
    )


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Emit an ERROR message with ``exc`` attached as ``exc_info``."""
    _emit(logger, LogLevel.ERROR, message, exc_info=exc)


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
