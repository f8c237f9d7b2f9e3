"""Supervisor: own the listening sockets and keep a worker serving on them.

This module provides the Supervisor class. It binds (or adopts) the
configured listeners once, spawns a worker that inherits them and then
monitors three things concurrently with anyio: the worker's exit, the fetch
loop and incoming signals. Workers come and go; the sockets stay open for
as long as the supervisor runs.
"""

import os
import signal
import socket
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, final

import anyio
import anyio.abc

from upshift._env import (
    ProcessDescriptor,
    WorkerExit,
    discover_binary,
    inherited_fds,
    launch_command,
    strip_handshake,
)
from upshift.exceptions import (
    HandshakeError,
    SupervisorError,
    UpgradeError,
    WorkerStopError,
)
from upshift.graceful import adopt_socket, bind_socket
from upshift.upgrade import BinaryInstaller, UpgradePipeline, file_binary_id

from ._backoff import ExponentialBackoff
from ._models import (
    SupervisorState,
    SupervisorStatus,
    WorkerEvent,
    WorkerEventType,
    get_timestamp,
)
from ._output import LogEventSink
from ._process import WorkerProcess

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from upshift.config import Config
    from upshift.fetcher import Fetcher

    from ._protocol import EventSink


def _exit_status(code: int) -> int:
    """Map a worker return code to a shell style exit status."""
    return 128 - code if code < 0 else code


@final
class Supervisor:
    """Long-lived parent process of the supervisor/worker pair.

    Only one restart is in flight at a time: a restart requested while one
    is underway is a no-op. Termination always wins; once it starts no
    worker is respawned.
    """

    __slots__ = (
        "_args",
        "_backoff",
        "_bin_path",
        "_environ",
        "_event_sink",
        "_installer",
        "_logger",
        "_pipeline",
        "_restarting",
        "_sockets",
        "_task_group",
        "_terminate_event",
        "_worker",
        "_worker_count",
        "config",
        "status",
    )

    def __init__(  # noqa: PLR0913
        self,
        config: "Config",
        *,
        logger: "FilteringBoundLogger",
        event_sink: "EventSink | None" = None,
        environ: Mapping[str, str] | None = None,
        args: Sequence[str] | None = None,
        installer: BinaryInstaller | None = None,
        backoff: ExponentialBackoff | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            config: Validated configuration.
            logger: Logger for supervisor messages.
            event_sink: Sink for worker events. Uses LogEventSink if None.
            environ: Environment to inspect and pass on. Defaults to
                ``os.environ``.
            args: Arguments passed to each worker. Defaults to this
                process's arguments.
            installer: Binary installer. Uses the platform default if None.
            backoff: Delay calculator for respawning crashed workers.
        """
        self.config = config
        self.status = SupervisorStatus()
        self._logger = logger
        self._event_sink: "EventSink" = event_sink or LogEventSink(logger)
        self._environ = dict(os.environ if environ is None else environ)
        self._args = list(args) if args is not None else None
        self._installer = installer
        self._backoff = backoff or ExponentialBackoff()
        self._bin_path: Path = config.binary or discover_binary()
        self._pipeline: UpgradePipeline | None = None
        self._sockets: list[socket.socket] = []
        self._worker: WorkerProcess | None = None
        self._worker_count = 0
        self._restarting = False
        self._terminate_event: anyio.Event | None = None
        self._task_group: anyio.abc.TaskGroup | None = None

    @property
    def terminating(self) -> bool:
        """Return True once shutdown has been requested."""
        return self._terminate_event is not None and self._terminate_event.is_set()

    @property
    def restarting(self) -> bool:
        """Return True while a restart is in flight."""
        return self._restarting

    @property
    def sockets(self) -> tuple[socket.socket, ...]:
        """Return the listening sockets, in configured address order."""
        return tuple(self._sockets)

    @property
    def worker(self) -> WorkerProcess | None:
        """Return the current worker, if any."""
        return self._worker

    @property
    def bin_path(self) -> Path:
        """Return the path of the supervised binary."""
        return self._bin_path

    def _set_state(self, state: SupervisorState) -> None:
        self._logger.debug("supervisor_state", state=state.value)
        self.status.state = state

    async def _emit(
        self,
        event_type: WorkerEventType,
        *,
        message: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        worker = self._worker
        if worker is not None:
            await worker.emit_event(event_type, message=message, exit_code=exit_code)
            return

        event = WorkerEvent(
            worker_id=None,
            event_type=event_type,
            timestamp=get_timestamp(),
            exit_code=exit_code,
            message=message,
        )
        try:  # noqa: SIM105
            await self._event_sink.write_event(event)
        except Exception:  # noqa: BLE001, S110
            pass

    def _check_binary(self) -> str:
        try:
            bin_id = file_binary_id(self._bin_path)
        except OSError as e:
            msg = f"cannot read binary {self._bin_path}: {e}"
            raise SupervisorError(msg) from e
        self.status.bin_id = bin_id
        return bin_id

    def _open_listeners(self) -> None:
        """Bind each configured address, or adopt descriptors from a parent.

        Raises:
            HandshakeError: If inherited descriptors do not match the
                configured addresses.
            OSError: If an address cannot be bound.
        """
        addresses = self.config.addresses
        fds = inherited_fds(self._environ)
        if fds:
            if len(fds) != len(addresses):
                msg = f"inherited {len(fds)} listeners for {len(addresses)} addresses"
                raise HandshakeError(msg)
            self._sockets = [adopt_socket(fd) for fd in fds]
            self._logger.debug("listeners_adopted", fds=list(fds))
        else:
            try:
                for address in addresses:
                    self._sockets.append(bind_socket(address))
            except OSError:
                self._close_listeners()
                raise
            self._logger.debug("listeners_bound", addresses=list(addresses))

        self._set_state(SupervisorState.LISTENING)

    def _close_listeners(self) -> None:
        for sock in self._sockets:
            sock.close()
        self._sockets = []

    async def run(self) -> int:
        """Run the supervisor until the worker exits for good.

        Returns:
            The exit status the supervisor process should exit with.

        Raises:
            SupervisorError: If the binary cannot be read.
            WorkerStartError: If a worker cannot be spawned.
            OSError: If a listen address cannot be bound.
        """
        bin_id = self._check_binary()
        self._terminate_event = anyio.Event()
        self._pipeline = UpgradePipeline(
            self._bin_path,
            bin_id,
            logger=self._logger,
            pre_upgrade=self.config.pre_upgrade,
            sanity_check_timeout=self.config.sanity_check_timeout,
            installer=self._installer,
        )
        self._open_listeners()

        error: SupervisorError | None = None
        exit_code = WorkerExit.ERROR
        try:
            async with anyio.create_task_group() as tg:
                self._task_group = tg
                tg.start_soon(self._receive_signals)
                if self.config.fetcher is not None:
                    tg.start_soon(self._fetch_loop)

                # Raised after the group exits so callers see it unwrapped
                try:
                    exit_code = await self._worker_loop()
                except SupervisorError as e:
                    error = e
                tg.cancel_scope.cancel()
        finally:
            self._task_group = None
            self._close_listeners()
            self._set_state(SupervisorState.EXITED)

        if error is not None:
            raise error
        return exit_code

    async def _spawn(self) -> WorkerProcess:
        assert self._pipeline is not None  # noqa: S101
        self._worker_count += 1
        descriptor = ProcessDescriptor(
            worker_id=str(self._worker_count),
            bin_id=self._pipeline.current_id,
            fds=tuple(sock.fileno() for sock in self._sockets),
            bin_path=self._bin_path,
        )
        worker = WorkerProcess(
            descriptor,
            launch_command(self._bin_path, self._args),
            self._event_sink,
            environ=strip_handshake(self._environ),
        )
        await worker.start()

        self._worker = worker
        self.status.worker_id = worker.worker_id
        self.status.worker_pid = worker.pid
        self.status.started_at = get_timestamp()
        self._set_state(SupervisorState.SPAWNED)
        return worker

    async def _worker_loop(self) -> int:
        while True:
            if self.terminating:
                return WorkerExit.CLEAN

            worker = await self._spawn()
            if self.terminating:
                # Terminate arrived while the worker was starting
                self._set_state(SupervisorState.TERMINATING)
                self._start_soon(
                    self._stop_worker,
                    worker,
                    signal.SIGTERM,
                    WorkerEventType.TERMINATING,
                )
            else:
                self._set_state(SupervisorState.MONITORING)

            code = await worker.wait()
            self.status.last_exit_code = code
            self.status.stopped_at = get_timestamp()
            self.status.worker_pid = None

            if self.terminating:
                await worker.emit_event(WorkerEventType.EXITED, exit_code=code)
                if code in (WorkerExit.CLEAN, WorkerExit.RESTART, -signal.SIGTERM):
                    return WorkerExit.CLEAN
                return _exit_status(code)

            if self._restarting or code == WorkerExit.RESTART:
                await worker.emit_event(WorkerEventType.EXITED, exit_code=code)
                self.status.restart_count += 1
                self._restarting = False
                continue

            if code == WorkerExit.CLEAN:
                await worker.emit_event(WorkerEventType.EXITED, exit_code=code)
                return WorkerExit.CLEAN

            if not await self._handle_crash(worker, code):
                return _exit_status(code)

    async def _handle_crash(self, worker: WorkerProcess, code: int) -> bool:
        """Decide whether to respawn after an unexpected worker exit.

        Returns:
            True if a new worker should be spawned.
        """
        self.status.crash_count += 1
        crash_count = self.status.crash_count
        allowed = self.config.crash_restarts or 0

        if crash_count > allowed:
            await worker.emit_event(
                WorkerEventType.CRASHED,
                exit_code=code,
                message=f"not respawning ({crash_count - 1}/{allowed} respawns used)",
            )
            return False

        delay = self._backoff.delay(crash_count - 1)
        await worker.emit_event(
            WorkerEventType.CRASHED,
            exit_code=code,
            message=f"respawning in {delay:.1f}s (attempt {crash_count}/{allowed})",
        )

        # Interruptible by shutdown
        assert self._terminate_event is not None  # noqa: S101
        with anyio.move_on_after(delay):
            await self._terminate_event.wait()
        return not self.terminating

    async def _receive_signals(self) -> None:
        restart_signal = self.config.restart_signal
        with anyio.open_signal_receiver(
            restart_signal, signal.SIGTERM, signal.SIGINT
        ) as signals:
            async for signum in signals:
                if signum == restart_signal:
                    self._logger.debug("restart_signal_received", signal=signum.name)
                    self.trigger_restart()
                else:
                    self._logger.debug("terminate_signal_received", signal=signum.name)
                    self.trigger_terminate()

    def trigger_restart(self) -> None:
        """Gracefully replace the current worker.

        With ``no_restart`` set this is a graceful shutdown instead. Does
        nothing while a restart or shutdown is already underway.
        """
        if self.config.no_restart:
            self.trigger_terminate()
            return

        worker = self._worker
        if self.terminating or self._restarting or worker is None:
            return
        if not worker.is_running():
            return

        self._restarting = True
        self._set_state(SupervisorState.RESTARTING)
        self._start_soon(
            self._stop_worker,
            worker,
            self.config.restart_signal,
            WorkerEventType.RESTARTING,
        )

    def trigger_terminate(self) -> None:
        """Gracefully stop the current worker and exit without respawning."""
        if self._terminate_event is None or self.terminating:
            return

        self._terminate_event.set()
        self._set_state(SupervisorState.TERMINATING)

        worker = self._worker
        if worker is not None and worker.is_running():
            self._start_soon(
                self._stop_worker,
                worker,
                signal.SIGTERM,
                WorkerEventType.TERMINATING,
            )

    def _start_soon(self, func, *args) -> None:  # noqa: ANN001, ANN002
        if self._task_group is None:
            msg = "supervisor is not running"
            raise SupervisorError(msg)
        self._task_group.start_soon(func, *args)

    async def _stop_worker(
        self,
        worker: WorkerProcess,
        signum: signal.Signals,
        event_type: WorkerEventType,
    ) -> None:
        await worker.emit_event(event_type, message=f"sent {signum.name}")
        timeout = self.config.terminate_timeout + self.config.kill_grace
        try:
            _ = await worker.stop(signum, timeout)
        except WorkerStopError as e:
            self._logger.error("worker_stop_failed", error=str(e))

    async def _fetch_loop(self) -> None:
        fetcher = self.config.fetcher
        assert fetcher is not None  # noqa: S101

        try:
            await fetcher.init()
        except Exception as e:  # noqa: BLE001
            self._logger.error("fetcher_init_failed", error=str(e))
            return

        interval = self.config.min_fetch_interval
        try:
            await anyio.sleep(interval)
            while not self.terminating:
                started = anyio.current_time()
                await self.fetch_once()
                elapsed = anyio.current_time() - started
                if elapsed < interval:
                    await anyio.sleep(interval - elapsed)
        finally:
            await self._close_fetcher(fetcher)

    async def _close_fetcher(self, fetcher: "Fetcher") -> None:
        aclose = getattr(fetcher, "aclose", None)
        if aclose is None:
            return
        with anyio.CancelScope(shield=True):
            try:
                await aclose()
            except Exception as e:  # noqa: BLE001
                self._logger.warning("fetcher_close_failed", error=str(e))

    async def fetch_once(self) -> bool:
        """Run one fetch cycle.

        Fetch errors and rejected upgrades are logged and otherwise
        ignored; the next cycle tries again.

        Returns:
            True if a new binary was installed.
        """
        fetcher = self.config.fetcher
        pipeline = self._pipeline
        if fetcher is None or pipeline is None:
            return False

        try:
            data = await fetcher.fetch()
        except Exception as e:  # noqa: BLE001
            self._logger.warning("fetch_failed", error=str(e))
            return False

        if data is None or not pipeline.is_new(data):
            return False

        previous_state = self.status.state
        self._set_state(SupervisorState.FETCHING)
        try:
            upgraded = await pipeline.apply(data)
        except UpgradeError as e:
            self._logger.warning("upgrade_failed", error=str(e))
            await self._emit(WorkerEventType.UPGRADE_FAILED, message=str(e))
            return False
        finally:
            if self.status.state is SupervisorState.FETCHING:
                self._set_state(previous_state)

        if not upgraded:
            return False

        self.status.bin_id = pipeline.current_id
        self.status.upgrade_count += 1
        await self._emit(
            WorkerEventType.UPGRADED,
            message=f"bin_id={pipeline.current_id[:12]}",
        )

        if not self.config.no_restart_after_fetch:
            self.trigger_restart()
        return True

    def get_status(self) -> dict[str, object]:
        """Get a status summary.

        Returns:
            Dictionary describing the supervisor and its current worker.
        """
        return {
            "state": self.status.state.value,
            "worker_id": self.status.worker_id,
            "worker_pid": self.status.worker_pid,
            "bin_id": self.status.bin_id,
            "bin_path": str(self._bin_path),
            "restart_count": self.status.restart_count,
            "crash_count": self.status.crash_count,
            "upgrade_count": self.status.upgrade_count,
            "last_exit_code": self.status.last_exit_code,
            "started_at": self.status.started_at,
            "stopped_at": self.status.stopped_at,
        }
