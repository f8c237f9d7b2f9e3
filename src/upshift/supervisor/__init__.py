"""Supervisor side of the supervisor/worker model.

The supervisor binds the listen addresses once and keeps a worker serving
on them, replacing it on restart signals and after upgrades.

Key Components:
    - Supervisor: Owns the listeners and the worker lifecycle
    - WorkerProcess: One spawned worker
    - EventSink: Protocol for consuming worker lifecycle events
    - LogEventSink / ConsoleEventSink: Event sink implementations
    - ExponentialBackoff: Delay before respawning a crashed worker
"""

from ._backoff import ExponentialBackoff
from ._models import (
    SupervisorState,
    SupervisorStatus,
    WorkerEvent,
    WorkerEventType,
    get_timestamp,
)
from ._output import ConsoleEventSink, LogEventSink
from ._process import WorkerProcess
from ._protocol import EventSink
from ._supervisor import Supervisor

__all__ = [
    "ConsoleEventSink",
    "EventSink",
    "ExponentialBackoff",
    "LogEventSink",
    "Supervisor",
    "SupervisorState",
    "SupervisorStatus",
    "WorkerEvent",
    "WorkerEventType",
    "WorkerProcess",
    "get_timestamp",
]
