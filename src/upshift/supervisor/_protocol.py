"""Protocol definitions for the supervisor.

This module defines the interface that decouples the supervisor core from
how lifecycle events are reported:
- EventSink: Protocol for consuming worker lifecycle events
"""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ._models import WorkerEvent


@runtime_checkable
class EventSink(Protocol):
    """Protocol for consuming worker lifecycle events.

    The protocol is async to support non-blocking I/O operations like
    writing to files or updating UIs. Errors raised by a sink are ignored
    by the supervisor.
    """

    async def write_event(self, event: "WorkerEvent") -> None:
        """Record a worker lifecycle event.

        Args:
            event: The lifecycle event to record.
        """
        ...
