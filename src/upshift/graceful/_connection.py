"""Connections that report their close back to the owning listener."""

from collections.abc import Callable, Mapping
from typing import Any, final

import anyio
import anyio.abc

from ._waitgroup import WaitGroup


@final
class GracefulConnection(anyio.abc.ByteStream):
    """Byte stream wrapper that participates in drain accounting.

    Closing the connection decrements the listener's open connection count
    and sets the per-connection closed event, exactly once. Further calls
    to aclose() are no-ops.

    Attributes:
        forced: True if the listener closed this connection at its drain
            deadline rather than the program closing it.
    """

    __slots__ = ("_closed", "_closing", "_stream", "_wait_group", "forced")

    def __init__(self, stream: anyio.abc.ByteStream, wait_group: WaitGroup) -> None:
        """Wrap an accepted stream.

        Args:
            stream: The accepted byte stream.
            wait_group: The owning listener's open connection counter. The
                caller has already counted this connection.
        """
        self._stream = stream
        self._wait_group = wait_group
        self._closing = False
        self._closed = anyio.Event()
        self.forced = False

    @property
    def closed(self) -> bool:
        """Return True once aclose() has been called."""
        return self._closing

    @property
    def stream(self) -> anyio.abc.ByteStream:
        """Return the wrapped stream."""
        return self._stream

    async def wait_closed(self) -> None:
        """Block until the connection has been closed."""
        await self._closed.wait()

    async def receive(self, max_bytes: int = 65536) -> bytes:
        return await self._stream.receive(max_bytes)

    async def send(self, item: bytes) -> None:
        await self._stream.send(item)

    async def send_eof(self) -> None:
        await self._stream.send_eof()

    async def aclose(self) -> None:
        """Close the stream and release the listener's count for it."""
        if self._closing:
            return

        self._closing = True
        try:
            await self._stream.aclose()
        finally:
            self._wait_group.done()
            self._closed.set()

    @property
    def extra_attributes(self) -> Mapping[Any, Callable[[], Any]]:
        return self._stream.extra_attributes
