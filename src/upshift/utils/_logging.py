"""Logging utilities for upshift.

This module provides standalone structlog logger factories. Supervisor and
worker processes share stderr, so every logger binds its role and pid. Each
logger is self-contained and does not modify global structlog configuration.
"""

import logging
import os
import sys
from os import getenv
from typing import TYPE_CHECKING, Literal, TextIO, cast

import structlog

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

LogFormatType = Literal["json", "text"]
RoleType = Literal["supervisor", "worker", "fallback", "cli"]


def _log_level_from_string(level: str, *, respect_env: bool = False) -> int:
    """Convert a log level string to a logging level integer.

    Args:
        level: Log level string (debug, info, warning, error).
        respect_env: If True, UPSHIFT_DEBUG overrides to DEBUG level.

    Returns:
        The logging level as an integer.
    """
    if respect_env and getenv("UPSHIFT_DEBUG", None):
        return logging.DEBUG

    log_levels = logging.getLevelNamesMapping()
    return log_levels.get(level.upper(), logging.INFO)


def resolve_log_level(*, debug: bool = False, no_warn: bool = False) -> int:
    """Work out the effective log level for a run.

    The level is determined by (in order of precedence):
    1. UPSHIFT_DEBUG environment variable (if set, enables DEBUG level)
    2. UPSHIFT_LOG_LEVEL environment variable
    3. ``debug`` flag (DEBUG)
    4. ``no_warn`` flag (ERROR)
    5. Default: WARNING

    Args:
        debug: Enable all upshift logs.
        no_warn: Suppress warnings.

    Returns:
        The logging level as an integer.
    """
    if getenv("UPSHIFT_DEBUG", None):
        return logging.DEBUG

    env_level = getenv("UPSHIFT_LOG_LEVEL", None)
    if env_level:
        return _log_level_from_string(env_level)

    if debug:
        return logging.DEBUG
    if no_warn:
        return logging.ERROR
    return logging.WARNING


def create_logger(
    *,
    level: int = logging.WARNING,
    log_format: LogFormatType = "text",
    stream: TextIO | None = None,
    role: RoleType | None = None,
) -> "FilteringBoundLogger":  # noqa: UP037
    """Create a standalone structlog logger.

    Args:
        level: Log level threshold.
        log_format: Output format, either "json" or "text".
        stream: Where to write log lines. Defaults to stderr so that
            the program's stdout stays untouched.
        role: Process role bound to all entries, along with the pid.

    Returns:
        A configured FilteringBoundLogger instance.
    """
    logger_factory = structlog.WriteLoggerFactory(
        file=stream if stream is not None else sys.stderr
    )

    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if log_format == "json":
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    logger = cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            logger_factory(),
            processors=processors,
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
        ),
    )

    if role is not None:
        return logger.bind(role=role, pid=os.getpid())
    return logger
