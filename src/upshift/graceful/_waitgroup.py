"""Counter with an observable "reached zero" event."""

from typing import final

import anyio


@final
class WaitGroup:
    """Count outstanding work and let tasks wait until none is left.

    All mutation happens on the event loop thread, so add() and done()
    never interleave with the zero check in wait(). The event is created
    lazily so a WaitGroup can be built outside of a running loop.
    """

    __slots__ = ("_count", "_zero")

    def __init__(self) -> None:
        self._count: int = 0
        self._zero: anyio.Event | None = None

    @property
    def count(self) -> int:
        """Return the number of outstanding items."""
        return self._count

    def add(self, delta: int = 1) -> None:
        """Adjust the counter by ``delta``.

        Raises:
            ValueError: If the counter would drop below zero.
        """
        if self._count + delta < 0:
            msg = "WaitGroup counter cannot go negative"
            raise ValueError(msg)

        self._count += delta
        if self._count == 0 and self._zero is not None:
            self._zero.set()
            self._zero = None

    def done(self) -> None:
        """Mark one item as finished."""
        self.add(-1)

    async def wait(self) -> None:
        """Block until the counter is zero. Returns at once if it already is."""
        while self._count > 0:
            if self._zero is None:
                self._zero = anyio.Event()
            await self._zero.wait()
