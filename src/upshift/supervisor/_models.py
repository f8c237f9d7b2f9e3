"""Data models for the supervisor.

This module defines the core data types for worker supervision:
- SupervisorState: Lifecycle states of the supervisor
- WorkerEventType: Types of worker lifecycle events
- WorkerEvent: Immutable event records
- SupervisorStatus: Mutable runtime status
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum


def get_timestamp() -> str:
    """Get current timestamp in ISO 8601 format."""
    return datetime.now(UTC).isoformat()


class SupervisorState(StrEnum):
    """Supervisor lifecycle states.

    - INIT: Configuration validated, nothing bound yet
    - LISTENING: Listening sockets are bound or adopted
    - SPAWNED: A worker process has been started
    - MONITORING: Waiting on the worker, fetching and relaying signals
    - FETCHING: A fetched binary is going through the upgrade pipeline
    - RESTARTING: The worker was asked to drain and will be replaced
    - TERMINATING: The worker was asked to drain and will not be replaced
    - EXITED: Listeners closed, supervisor done
    """

    INIT = "init"
    LISTENING = "listening"
    SPAWNED = "spawned"
    MONITORING = "monitoring"
    FETCHING = "fetching"
    RESTARTING = "restarting"
    TERMINATING = "terminating"
    EXITED = "exited"


class WorkerEventType(StrEnum):
    """Types of worker lifecycle events.

    - STARTED: Worker process has been spawned
    - EXITED: Worker process exited cleanly
    - CRASHED: Worker process exited with an unexpected status
    - RESTARTING: Worker was asked to drain for a restart
    - TERMINATING: Worker was asked to drain for shutdown
    - KILLED: Worker did not exit in time and was killed
    - UPGRADED: A new binary was installed
    - UPGRADE_FAILED: A fetched binary was rejected
    """

    STARTED = "started"
    EXITED = "exited"
    CRASHED = "crashed"
    RESTARTING = "restarting"
    TERMINATING = "terminating"
    KILLED = "killed"
    UPGRADED = "upgraded"
    UPGRADE_FAILED = "upgrade_failed"


@dataclass(frozen=True, slots=True)
class WorkerEvent:
    """Immutable worker lifecycle event.

    Attributes:
        worker_id: Id of the worker the event concerns, if any.
        event_type: Type of lifecycle event.
        timestamp: ISO 8601 formatted timestamp.
        pid: Process ID if applicable.
        exit_code: Exit code if the process terminated.
        message: Optional human-readable message.
    """

    worker_id: str | None
    event_type: WorkerEventType
    timestamp: str
    pid: int | None = None
    exit_code: int | None = None
    message: str | None = None


@dataclass(slots=True)
class SupervisorStatus:
    """Mutable runtime status of the supervisor.

    Attributes:
        state: Current supervisor state.
        worker_id: Id of the current worker, if one is running.
        worker_pid: Process ID of the current worker, if one is running.
        bin_id: Content id of the binary on disk.
        restart_count: Number of workers replaced after a restart.
        crash_count: Number of unexpected worker exits.
        upgrade_count: Number of binaries installed.
        last_exit_code: Exit code of the last worker.
        started_at: ISO 8601 timestamp of the last worker start.
        stopped_at: ISO 8601 timestamp of the last worker exit.
    """

    state: SupervisorState = SupervisorState.INIT
    worker_id: str | None = None
    worker_pid: int | None = None
    bin_id: str | None = None
    restart_count: int = 0
    crash_count: int = 0
    upgrade_count: int = 0
    last_exit_code: int | None = None
    started_at: str | None = None
    stopped_at: str | None = None
