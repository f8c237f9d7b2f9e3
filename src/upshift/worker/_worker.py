"""Worker process: serve the program on inherited listeners.

The worker rebuilds its listeners from descriptors the supervisor passed
down, runs the program against them and drains them when asked to restart
or terminate. The exit status tells the supervisor what to do next.
"""

import os
import signal
import socket
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, final

import anyio
import anyio.abc

from upshift._env import ProcessDescriptor, WorkerExit
from upshift.exceptions import HandshakeError
from upshift.graceful import GracefulListener, SocketTransport, adopt_socket

from ._state import State

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from upshift.config import Config

# Seconds between checks that the supervisor is still alive
PARENT_POLL_INTERVAL: float = 1.0


class DrainReason(StrEnum):
    """Why a worker started draining its listeners."""

    RESTART = "restart"
    TERMINATE = "terminate"
    PARENT_EXITED = "parent_exited"
    PROGRAM_EXITED = "program_exited"


@final
class Worker:
    """Runs the program inside a supervised worker process.

    Attributes:
        config: Validated configuration.
        descriptor: Handshake state decoded from the environment.
    """

    __slots__ = (
        "_drain_reason",
        "_drained",
        "_exit_code",
        "_listeners",
        "_logger",
        "_parent_pid",
        "_state",
        "_task_group",
        "config",
        "descriptor",
    )

    def __init__(
        self,
        config: "Config",
        descriptor: ProcessDescriptor,
        *,
        logger: "FilteringBoundLogger",
    ) -> None:
        self.config = config
        self.descriptor = descriptor
        self._logger = logger.bind(worker_id=descriptor.worker_id)
        self._parent_pid = os.getppid()
        self._listeners: tuple[GracefulListener, ...] = ()
        self._state: State | None = None
        self._drain_reason: DrainReason | None = None
        self._drained: anyio.Event | None = None
        self._task_group: anyio.abc.TaskGroup | None = None
        self._exit_code: int = WorkerExit.CLEAN

    @property
    def drain_reason(self) -> DrainReason | None:
        """Return why the worker is draining, or None if it is not."""
        return self._drain_reason

    def _adopt_sockets(self) -> list[socket.socket]:
        addresses = self.config.addresses
        if self.descriptor.num_fds != len(addresses):
            msg = (
                f"supervisor passed {self.descriptor.num_fds} listeners "
                f"for {len(addresses)} addresses"
            )
            raise HandshakeError(msg)

        return [adopt_socket(fd) for fd in self.descriptor.fds]

    async def run(self) -> int:
        """Serve until drained.

        Returns:
            The process exit status: WorkerExit.RESTART after a restart
            drain, WorkerExit.ERROR if the program raised, otherwise
            WorkerExit.CLEAN.

        Raises:
            HandshakeError: If the inherited descriptors do not match the
                configured addresses.
            OSError: If an inherited descriptor is not a socket.
        """
        self._drained = anyio.Event()
        sockets = self._adopt_sockets()

        async with anyio.create_task_group() as tg:
            self._task_group = tg
            self._listeners = tuple(
                GracefulListener(SocketTransport(sock), tg, logger=self._logger)
                for sock in sockets
            )
            self._state = State(
                enabled=True,
                id=self.descriptor.worker_id,
                bin_id=self.descriptor.bin_id,
                started_at=datetime.now(UTC),
                addresses=self.config.addresses,
                listeners=self._listeners,
                restart_hook=self.request_restart,
            )

            tg.start_soon(self._receive_signals)
            tg.start_soon(self._watch_parent)
            tg.start_soon(self._run_program, self._state)
            self._logger.debug("worker_started", listeners=len(self._listeners))

            await self._drained.wait()
            tg.cancel_scope.cancel()

        self._logger.debug(
            "worker_exiting",
            reason=self._drain_reason,
            exit_code=self._exit_code,
        )
        return self._exit_code

    async def _run_program(self, state: State) -> None:
        try:
            await self.config.program(state)
        except anyio.ClosedResourceError:
            # Accepting on a released listener ends the program
            if self._drain_reason is None:
                self._logger.exception("program_failed")
                self._exit_code = WorkerExit.ERROR
        except Exception:
            self._logger.exception("program_failed")
            if self._drain_reason is None:
                self._exit_code = WorkerExit.ERROR
        self.begin_drain(DrainReason.PROGRAM_EXITED)

    async def _receive_signals(self) -> None:
        restart_signal = self.config.restart_signal
        with anyio.open_signal_receiver(
            restart_signal, signal.SIGTERM, signal.SIGINT
        ) as signals:
            async for signum in signals:
                if signum == restart_signal and not self.config.no_restart:
                    self.begin_drain(DrainReason.RESTART)
                else:
                    self.begin_drain(DrainReason.TERMINATE)

    async def _watch_parent(self) -> None:
        while True:
            await anyio.sleep(PARENT_POLL_INTERVAL)
            if os.getppid() != self._parent_pid:
                self._logger.warning("supervisor_exited", parent_pid=self._parent_pid)
                self.begin_drain(DrainReason.PARENT_EXITED)
                return

    def request_restart(self) -> None:
        """Ask the supervisor to replace this worker."""
        try:
            os.kill(self._parent_pid, self.config.restart_signal)
        except ProcessLookupError:
            self._logger.warning("supervisor_missing", parent_pid=self._parent_pid)

    def begin_drain(self, reason: DrainReason) -> None:
        """Stop accepting and drain every listener.

        Only the first call starts a drain. A terminate arriving during a
        restart drain still turns the exit into a clean shutdown.
        """
        if self._drain_reason is not None:
            if reason is DrainReason.TERMINATE and (
                self._drain_reason is DrainReason.RESTART
            ):
                self._drain_reason = reason
                self._exit_code = WorkerExit.CLEAN
            return

        self._drain_reason = reason
        if reason is DrainReason.RESTART:
            self._exit_code = WorkerExit.RESTART

        self._logger.info(
            "worker_draining",
            reason=reason,
            timeout=self.config.terminate_timeout,
        )
        if self._state is not None:
            self._state.graceful_shutdown.set()
        for listener in self._listeners:
            listener.release(self.config.terminate_timeout)

        assert self._drained is not None  # noqa: S101
        drained = self._drained

        async def wait_closed() -> None:
            for listener in self._listeners:
                try:
                    await listener.aclose()
                except OSError as e:
                    self._logger.warning("listener_close_failed", error=str(e))

            forced = sum(listener.forced_closures for listener in self._listeners)
            if forced:
                self._logger.warning("connections_forced_closed", count=forced)
            drained.set()

        assert self._task_group is not None  # noqa: S101
        self._task_group.start_soon(wait_closed)
