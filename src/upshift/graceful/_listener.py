"""Graceful listener with bounded connection draining.

A GracefulListener wraps a ListenerTransport and tracks every connection it
hands out. Releasing the listener stops accepting immediately and starts a
drain: if all connections close before the deadline nothing else happens,
otherwise the remaining connections are closed by force.
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, final

import anyio
import anyio.abc

from ._connection import GracefulConnection
from ._protocol import ListenerTransport
from ._socket import KEEPALIVE_PERIOD, enable_keepalive
from ._waitgroup import WaitGroup

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger


@final
class GracefulListener(anyio.abc.Listener[GracefulConnection]):
    """Listener that can stop accepting while letting connections finish.

    Every accepted connection gets a watcher task in ``task_group`` that
    races the connection's own close against the listener-wide force-close
    event, so a drain deadline turns into socket closes without polling.

    Attributes:
        forced_closures: Number of connections closed at the drain deadline.
    """

    def __init__(
        self,
        transport: ListenerTransport,
        task_group: anyio.abc.TaskGroup,
        *,
        keepalive_period: float = KEEPALIVE_PERIOD,
        logger: "FilteringBoundLogger | None" = None,
    ) -> None:
        """Wrap a transport.

        Args:
            transport: The accepting endpoint.
            task_group: Task group that runs connection watchers and the
                drain timer. It must outlive the drain.
            keepalive_period: TCP keep-alive period for accepted sockets.
            logger: Optional logger for drain progress.
        """
        self._transport = transport
        self._task_group = task_group
        self._keepalive_period = keepalive_period
        self._logger = logger
        self._wait_group = WaitGroup()
        self._force_close = anyio.Event()
        self._released = False
        self._close_error: OSError | None = None
        self.forced_closures = 0

    @property
    def transport(self) -> ListenerTransport:
        """Return the wrapped transport."""
        return self._transport

    @property
    def released(self) -> bool:
        """Return True once the listener has stopped accepting."""
        return self._released

    @property
    def open_connections(self) -> int:
        """Return the number of accepted connections not yet closed."""
        return self._wait_group.count

    def fileno(self) -> int:
        """Return the transport's descriptor."""
        return self._transport.fileno()

    async def accept(self) -> GracefulConnection:
        """Accept a connection that participates in drain accounting.

        Raises:
            anyio.ClosedResourceError: If the listener has been released.
            OSError: Any error from the underlying transport's accept.
        """
        if self._released:
            raise anyio.ClosedResourceError

        stream = await self._transport.accept()
        enable_keepalive(stream, self._keepalive_period)

        self._wait_group.add()
        connection = GracefulConnection(stream, self._wait_group)
        self._task_group.start_soon(self._watch, connection)
        return connection

    async def _watch(self, connection: GracefulConnection) -> None:
        async with anyio.create_task_group() as tg:

            async def wait_forced() -> None:
                await self._force_close.wait()
                tg.cancel_scope.cancel()

            tg.start_soon(wait_forced)
            await connection.wait_closed()
            tg.cancel_scope.cancel()

        if connection.closed:
            return

        connection.forced = True
        self.forced_closures += 1
        with anyio.CancelScope(shield=True):
            await connection.aclose()

    def _stop_accepting(self) -> None:
        self._released = True
        try:
            self._transport.close()
        except OSError as e:
            self._close_error = e

    def release(self, timeout: float) -> None:
        """Stop accepting and start draining without blocking.

        Open connections get ``timeout`` seconds to close on their own, after
        which they are closed by force. Only the first call has any effect.

        Args:
            timeout: Drain deadline in seconds.
        """
        if self._released:
            if self._logger is not None:
                self._logger.warning("listener_already_released", fd=self.fileno())
            return

        self._stop_accepting()
        self._task_group.start_soon(self._drain, timeout)

    async def _drain(self, timeout: float) -> None:
        with anyio.move_on_after(timeout):
            await self._wait_group.wait()

        remaining = self._wait_group.count
        if remaining == 0:
            return

        if self._logger is not None:
            self._logger.warning(
                "drain_timeout",
                timeout=timeout,
                open_connections=remaining,
            )
        self._force_close.set()

    async def aclose(self) -> None:
        """Block until every accepted connection has closed.

        Stops accepting first if release() has not been called; in that case
        connections are waited for without a deadline.

        Raises:
            OSError: The error captured when the transport was closed.
        """
        if not self._released:
            self._stop_accepting()

        await self._wait_group.wait()
        if self._close_error is not None:
            raise self._close_error

    async def serve(
        self,
        handler: Callable[[GracefulConnection], Awaitable[object]],
        task_group: anyio.abc.TaskGroup | None = None,
    ) -> None:
        """Accept connections until released, running ``handler`` for each.

        Each connection is closed once its handler returns. A handler that
        fails because its connection was closed at the drain deadline is
        not treated as an error.

        Args:
            handler: Coroutine function called with each connection.
            task_group: Task group to run handlers in. Defaults to the
                listener's own task group.
        """
        group = task_group if task_group is not None else self._task_group

        async def run_handler(connection: GracefulConnection) -> None:
            try:
                await handler(connection)
            except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                if not connection.forced:
                    raise
            finally:
                with anyio.CancelScope(shield=True):
                    await connection.aclose()

        while True:
            try:
                connection = await self.accept()
            except anyio.ClosedResourceError:
                return
            group.start_soon(run_handler, connection)
