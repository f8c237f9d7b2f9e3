"""Entry point: decide what this process is and run it.

A process started by the user becomes the supervisor. A process started by
a supervisor finds the handshake variables in its environment and becomes
a worker. Whatever goes wrong ends up in :func:`run`, which either exits or
falls back to running the program directly.
"""

import os
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, NoReturn

import anyio

from upshift._env import ProcessDescriptor, WorkerExit, is_worker
from upshift.config import Config, validate_config
from upshift.exceptions import ConfigError, UnsupportedPlatformError, UpshiftError
from upshift.supervisor import Supervisor
from upshift.upgrade import answer_sanity_check
from upshift.utils import create_logger, resolve_log_level
from upshift.worker import State, Worker

if TYPE_CHECKING:
    from collections.abc import Mapping

    from structlog.typing import FilteringBoundLogger


@dataclass(frozen=True, slots=True)
class SupervisorRole:
    """This process owns the listeners and spawns workers."""


@dataclass(frozen=True, slots=True)
class WorkerRole:
    """This process was spawned by a supervisor.

    Attributes:
        descriptor: Handshake state decoded from the environment.
    """

    descriptor: ProcessDescriptor


Role = SupervisorRole | WorkerRole


def is_supported() -> bool:
    """Return True if this platform can hand listening sockets to a child."""
    return os.name == "posix"


def sanity_check() -> None:
    """Answer a pending binary sanity check and exit.

    :func:`run` calls this first. Programs that do work before calling
    :func:`run` should call it at the very top of their entry point.
    """
    if answer_sanity_check():
        sys.exit(0)


def select_role(environ: "Mapping[str, str]") -> Role:
    """Choose the role of this process from its environment.

    Raises:
        HandshakeError: If the worker marker is set but the rest of the
            handshake is missing or malformed.
    """
    if is_worker(environ):
        return WorkerRole(ProcessDescriptor.from_env(environ))
    return SupervisorRole()


def _logger_for(config: Config, role: Role) -> "FilteringBoundLogger":
    level = resolve_log_level(debug=config.debug, no_warn=config.no_warn)
    name = "worker" if isinstance(role, WorkerRole) else "supervisor"
    return create_logger(level=level, role=name)


async def _run_role(config: Config, role: Role) -> int:
    logger = _logger_for(config, role)
    match role:
        case WorkerRole(descriptor=descriptor):
            return await Worker(config, descriptor, logger=logger).run()
        case SupervisorRole():
            return await Supervisor(config, logger=logger).run()


def run_err(config: Config) -> int:
    """Run as supervisor or worker and return the exit status.

    Args:
        config: Configuration supplied by the caller.

    Returns:
        The status this process should exit with.
        A process started only to answer a binary sanity check answers it
        and returns WorkerExit.CLEAN without binding or spawning anything.

    Raises:
        UnsupportedPlatformError: If the platform cannot pass sockets on.
        ConfigValidationError: If the configuration is invalid.
        UpshiftError: If the supervisor or worker cannot start.
        OSError: If a listen address cannot be bound.
    """
    if not is_supported():
        msg = f"graceful restarts are not supported on {sys.platform}"
        raise UnsupportedPlatformError(msg, platform=sys.platform)

    config = validate_config(config)
    if answer_sanity_check():
        return WorkerExit.CLEAN

    role = select_role(os.environ)
    return anyio.run(_run_role, config, role)


def _fallback_addresses(config: Config) -> tuple[str, ...]:
    if config.addresses:
        return tuple(config.addresses)
    return (config.address,) if config.address else ()


def run(config: Config) -> NoReturn:
    """Run the program with graceful restarts, then exit the process.

    If upshift cannot run and ``config.required`` is False, the program is
    run directly with a disabled :class:`State` and no listeners.
    Configuration errors are always fatal.

    Args:
        config: Configuration supplied by the caller.
    """
    sanity_check()

    try:
        code = run_err(config)
    except (UpshiftError, OSError) as e:
        logger = create_logger(
            level=resolve_log_level(debug=config.debug, no_warn=config.no_warn),
            role="fallback",
        )
        if config.required or isinstance(e, ConfigError):
            logger.error("upshift_failed", error=str(e), error_type=type(e).__name__)
            raise SystemExit(1) from e

        logger.warning("upshift_disabled", error=str(e))
        anyio.run(config.program, State.disabled(_fallback_addresses(config)))
        code = 0

    sys.exit(code)
