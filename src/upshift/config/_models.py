"""Runtime configuration model.

This module provides the Config Pydantic model describing how a program is
supervised: where it listens, which signal restarts it, how long draining may
take and where new binaries come from.
"""

import signal
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from upshift.fetcher import Fetcher

DEFAULT_RESTART_SIGNAL: signal.Signals = signal.SIGUSR2
DEFAULT_TERMINATE_TIMEOUT: float = 30.0
DEFAULT_KILL_GRACE: float = 1.0
DEFAULT_MIN_FETCH_INTERVAL: float = 1.0
DEFAULT_SANITY_CHECK_TIMEOUT: float = 5.0


class Config(BaseModel):
    """Supervisor and worker configuration.

    Build one with either ``address`` or ``addresses`` and hand it to
    :func:`upshift.run`. The instance is frozen; :func:`validate_config`
    returns a normalized copy.

    Attributes:
        program: Async callable run by the worker with the runtime State.
        address: Single listen address (set this or addresses).
        addresses: Listen addresses (set this or address).
        restart_signal: Signal that triggers a graceful restart.
        terminate_timeout: Seconds a worker may spend draining connections.
        kill_grace: Extra seconds before the supervisor kills a worker
            that has not exited after terminate_timeout.
        min_fetch_interval: Smallest number of seconds between fetches.
        pre_upgrade: Called with the staged binary path; raising cancels
            the upgrade.
        fetcher: Source of new binaries. No fetching happens when unset.
        required: Never fall back to running the program in-process.
        no_restart: Turn the restart signal into a graceful shutdown.
        no_restart_after_fetch: Install upgrades without restarting.
        debug: Enable all upshift logs.
        no_warn: Disable upshift warnings.
        crash_restarts: Respawns allowed after a worker crashes. Resolved
            to 0 in required mode and 1 otherwise when unset.
        sanity_check_timeout: Seconds a staged binary gets to answer its
            sanity check.
        binary: Path of the running binary. Discovered when unset.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        frozen=True, extra="forbid", arbitrary_types_allowed=True
    )

    program: Callable[..., Awaitable[None]]
    address: str | None = None
    addresses: tuple[str, ...] = ()
    restart_signal: signal.Signals = DEFAULT_RESTART_SIGNAL
    terminate_timeout: float = DEFAULT_TERMINATE_TIMEOUT
    kill_grace: float = DEFAULT_KILL_GRACE
    min_fetch_interval: float = DEFAULT_MIN_FETCH_INTERVAL
    pre_upgrade: Callable[[Path], Any] | None = None
    fetcher: Fetcher | None = None
    required: bool = False
    no_restart: bool = False
    no_restart_after_fetch: bool = False
    debug: bool = False
    no_warn: bool = False
    crash_restarts: int | None = Field(default=None, ge=0)
    sanity_check_timeout: float = DEFAULT_SANITY_CHECK_TIMEOUT
    binary: Path | None = None
