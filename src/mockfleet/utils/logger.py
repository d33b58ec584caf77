"""
Logging utilities for MockFleet.

Thin wrapper around loguru so every module can do:

    from mockfleet.utils.logger import get_logger
    logger = get_logger(__name__)

Sinks are installed once by configure_logging(), usually from the server
or CLI entry point before anything interesting happens.
"""

import logging
import sys
import traceback

from loguru import logger as _logger

from mockfleet.models.enums import LogLevel

# =============================================================================
# Level Mapping
# =============================================================================

_LEVEL_MAP = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

# Records logged before configure_logging() still need a name
_logger.configure(extra={"name": "mockfleet"})


class InterceptHandler(logging.Handler):
    """Route standard logging records (uvicorn, httpx) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _logger.bind(name=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def get_logger(name: str):
    """
    Get a logger bound to a module name.

    Args:
        name: Usually ``__name__`` of the calling module.

    Returns:
        A loguru logger carrying ``name`` in its extra dict.
    """
    return _logger.bind(name=name)


def configure_logging(level: LogLevel = LogLevel.INFO, log_file: str = "") -> None:
    """
    Install stderr (and optionally file) sinks at the given level.

    Args:
        level: MockFleet log level.
        log_file: Optional path of a file sink. Empty string disables it.
    """
    loguru_level = _LEVEL_MAP.get(level, "INFO")

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=loguru_level,
        format=_FORMAT,
        backtrace=level == LogLevel.FULL,
        diagnose=level == LogLevel.FULL,
    )

    if log_file:
        _logger.add(
            log_file,
            level=loguru_level,
            format=_FORMAT,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )

    # uvicorn runs with log_config=None, its records arrive here
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


def format_traceback(exc: BaseException) -> str:
    """Render an exception and its traceback as a single string."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
