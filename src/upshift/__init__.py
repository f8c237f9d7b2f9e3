"""Graceful restarts and live upgrades for long running network services.

upshift splits a service into a supervisor, which owns the listening
sockets, and a worker, which serves on them. Restarting replaces the
worker without closing the sockets or dropping in-flight connections.

Example:
    >>> import upshift
    >>>
    >>> async def serve(state: upshift.State) -> None:
    ...     await state.listener.serve(handle)
    >>>
    >>> if __name__ == "__main__":
    ...     upshift.run(upshift.Config(program=serve, address=":8080"))
"""

from upshift._env import WorkerExit
from upshift._run import (
    Role,
    SupervisorRole,
    WorkerRole,
    is_supported,
    run,
    run_err,
    sanity_check,
    select_role,
)
from upshift.config import Config, validate_config
from upshift.exceptions import (
    ConfigError,
    ConfigValidationError,
    FetchError,
    HandshakeError,
    UnsupportedPlatformError,
    UpgradeError,
    UpshiftError,
)
from upshift.fetcher import FileFetcher, HTTPFetcher
from upshift.worker import State

__all__ = [
    "Config",
    "ConfigError",
    "ConfigValidationError",
    "FetchError",
    "FileFetcher",
    "HTTPFetcher",
    "HandshakeError",
    "Role",
    "State",
    "SupervisorRole",
    "UnsupportedPlatformError",
    "UpgradeError",
    "UpshiftError",
    "WorkerExit",
    "WorkerRole",
    "is_supported",
    "run",
    "run_err",
    "sanity_check",
    "select_role",
    "validate_config",
]
