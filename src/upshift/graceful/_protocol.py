"""Protocol definitions for the graceful listener layer.

This module defines the transport interface that decouples the graceful
drain logic from a concrete socket implementation:
- ListenerTransport: Protocol for something that accepts byte streams
"""

from typing import Protocol, runtime_checkable

import anyio.abc


@runtime_checkable
class ListenerTransport(Protocol):
    """Protocol for an accepting endpoint.

    SocketTransport implements this over a bound listening socket. Tests
    use an in-memory fake so draining can be exercised without the network.
    """

    async def accept(self) -> anyio.abc.ByteStream:
        """Accept the next incoming connection.

        Raises:
            anyio.ClosedResourceError: If the transport was closed, including
                while this call was waiting.
        """
        ...

    def close(self) -> None:
        """Stop accepting and release the underlying descriptor.

        Must wake up a pending accept() call.
        """
        ...

    def fileno(self) -> int:
        """Return the underlying descriptor, or -1 if there is none."""
        ...
