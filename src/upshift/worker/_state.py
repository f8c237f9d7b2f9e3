"""Runtime state handed to the user program."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import anyio

from upshift.graceful import GracefulListener


@dataclass(slots=True)
class State:
    """What the program gets to work with.

    Attributes:
        enabled: False when upshift fell back to running the program
            directly; there are no listeners in that case and the program
            must bind its own addresses.
        id: Identifier of this worker instance.
        bin_id: Content id of the running binary.
        started_at: When the worker started, in UTC.
        addresses: Configured listen addresses.
        listeners: Graceful listeners, in the same order as addresses.
        graceful_shutdown: Set when the worker starts draining. Programs
            with background loops should stop them once it is set.
    """

    enabled: bool
    id: str
    bin_id: str
    started_at: datetime
    addresses: tuple[str, ...]
    listeners: tuple[GracefulListener, ...]
    graceful_shutdown: anyio.Event = field(default_factory=anyio.Event)
    restart_hook: Callable[[], None] | None = field(default=None, repr=False)

    @property
    def listener(self) -> GracefulListener | None:
        """Return the first listener, if there is one."""
        return self.listeners[0] if self.listeners else None

    @property
    def address(self) -> str | None:
        """Return the first listen address, if there is one."""
        return self.addresses[0] if self.addresses else None

    def restart(self) -> None:
        """Ask the supervisor for a graceful restart.

        Does nothing when upshift is disabled.
        """
        if self.restart_hook is not None:
            self.restart_hook()

    @classmethod
    def disabled(cls, addresses: tuple[str, ...] = ()) -> "State":
        """Build the state used when the program runs without a supervisor."""
        return cls(
            enabled=False,
            id="",
            bin_id="",
            started_at=datetime.now(UTC),
            addresses=addresses,
            listeners=(),
        )
