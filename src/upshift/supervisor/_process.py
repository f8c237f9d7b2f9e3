"""Worker process lifecycle management.

This module provides the WorkerProcess class that spawns a single worker
with the supervisor's listening descriptors, waits for it and stops it.
"""

import signal
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, final

import anyio
import anyio.abc

from upshift.exceptions import WorkerStartError, WorkerStopError

from ._models import WorkerEvent, WorkerEventType, get_timestamp

if TYPE_CHECKING:
    from upshift._env import ProcessDescriptor

    from ._protocol import EventSink


@final
class WorkerProcess:
    """Manages the lifecycle of one worker process.

    The worker inherits the supervisor's stdio and the listener descriptors
    named in its ProcessDescriptor. The descriptor is also encoded into the
    worker's environment.

    Attributes:
        descriptor: Handshake state for this worker.
        command: Command line that starts the worker.
    """

    __slots__ = (
        "_environ",
        "_event_sink",
        "_process",
        "command",
        "descriptor",
        "killed",
    )

    def __init__(
        self,
        descriptor: "ProcessDescriptor",
        command: Sequence[str],
        event_sink: "EventSink",
        *,
        environ: Mapping[str, str],
    ) -> None:
        """Initialize the worker process manager.

        Args:
            descriptor: Handshake state for the worker.
            command: Command and arguments to execute.
            event_sink: Sink for lifecycle events.
            environ: Base environment, without handshake variables.
        """
        self.descriptor = descriptor
        self.command = tuple(command)
        self._event_sink = event_sink
        self._environ = dict(environ)
        self._process: anyio.abc.Process | None = None
        self.killed = False

    @property
    def worker_id(self) -> str:
        """Return the id of this worker."""
        return self.descriptor.worker_id

    @property
    def pid(self) -> int | None:
        """Return the process ID if started, None otherwise."""
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        """Return the exit code, or None while the worker is running."""
        return self._process.returncode if self._process is not None else None

    def is_running(self) -> bool:
        """Check if the worker has been started and has not exited."""
        return self._process is not None and self._process.returncode is None

    async def emit_event(
        self,
        event_type: WorkerEventType,
        *,
        message: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        """Emit a worker lifecycle event to the event sink.

        Args:
            event_type: Type of event to emit.
            message: Optional message for the event.
            exit_code: Exit code if process terminated.
        """
        event = WorkerEvent(
            worker_id=self.worker_id,
            event_type=event_type,
            timestamp=get_timestamp(),
            pid=self.pid,
            exit_code=exit_code,
            message=message,
        )
        try:  # noqa: SIM105
            await self._event_sink.write_event(event)
        except Exception:  # noqa: BLE001, S110
            # Event sink errors should not take the worker down
            pass

    async def start(self) -> None:
        """Spawn the worker.

        Raises:
            WorkerStartError: If the process cannot be started.
        """
        env = {**self._environ, **self.descriptor.to_env()}
        try:
            self._process = await anyio.open_process(
                self.command,
                env=env,
                pass_fds=self.descriptor.fds,
                stdin=None,
                stdout=None,
                stderr=None,
            )
        except OSError as e:
            msg = f"Failed to start worker {self.worker_id}: {e}"
            raise WorkerStartError(msg, worker_id=self.worker_id, cause=e) from e

        await self.emit_event(
            WorkerEventType.STARTED,
            message=f"bin_id={self.descriptor.bin_id[:12]}",
        )

    async def wait(self) -> int:
        """Wait for the worker to exit.

        Returns:
            The process exit code. Negative values are signal numbers.
        """
        if self._process is None:
            msg = f"Worker {self.worker_id} was never started"
            raise WorkerStopError(msg, worker_id=self.worker_id)
        return await self._process.wait()

    def send_signal(self, signum: int) -> None:
        """Send a signal to the worker if it is still running.

        Raises:
            WorkerStopError: If the signal cannot be delivered.
        """
        if not self.is_running():
            return
        assert self._process is not None  # noqa: S101
        try:
            self._process.send_signal(signum)
        except ProcessLookupError:
            # Exited between the check and the signal
            pass
        except OSError as e:
            msg = f"Failed to signal worker {self.worker_id}: {e}"
            raise WorkerStopError(msg, worker_id=self.worker_id, cause=e) from e

    async def stop(self, signum: int, timeout: float) -> int | None:
        """Ask the worker to drain and kill it if it does not exit in time.

        Sends ``signum`` and waits up to ``timeout`` seconds. If the worker
        is still running after that, sends SIGKILL.

        Args:
            signum: Signal asking the worker to drain.
            timeout: Seconds to wait before killing.

        Returns:
            The exit code, or None if the worker was never started.

        Raises:
            WorkerStopError: If the worker cannot be signalled.
        """
        if self._process is None:
            return None

        self.send_signal(signum)

        with anyio.move_on_after(timeout):
            _ = await self._process.wait()

        if self._process.returncode is None:
            self.killed = True
            await self.emit_event(
                WorkerEventType.KILLED,
                message=f"did not exit within {timeout:.1f}s",
            )
            self.send_signal(signal.SIGKILL)
            _ = await self._process.wait()

        return self._process.returncode
