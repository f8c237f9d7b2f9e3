"""Graceful listeners and connections.

Listeners in this package count the connections they hand out, so a worker
can stop accepting, let in-flight connections finish and close whatever is
left once a deadline passes.

Key Components:
    - GracefulListener: Listener with release(timeout) and blocking aclose()
    - GracefulConnection: Byte stream that reports its close exactly once
    - WaitGroup: Counter with a "reached zero" event
    - ListenerTransport: Protocol for the accepting endpoint
    - SocketTransport: ListenerTransport over a listening socket

Example:
    >>> async with anyio.create_task_group() as tg:
    ...     listener = GracefulListener(SocketTransport(bind_socket(":8080")), tg)
    ...     tg.start_soon(listener.serve, handle)
    ...     ...
    ...     listener.release(30.0)
"""

from ._connection import GracefulConnection
from ._listener import GracefulListener
from ._protocol import ListenerTransport
from ._socket import (
    KEEPALIVE_PERIOD,
    SocketTransport,
    adopt_socket,
    bind_socket,
    enable_keepalive,
    parse_address,
)
from ._waitgroup import WaitGroup

__all__ = [
    "KEEPALIVE_PERIOD",
    "GracefulConnection",
    "GracefulListener",
    "ListenerTransport",
    "SocketTransport",
    "WaitGroup",
    "adopt_socket",
    "bind_socket",
    "enable_keepalive",
    "parse_address",
]
