"""Socket transport for graceful listeners.

This module binds listen addresses, adopts inherited listening descriptors
and accepts connections on them without handing socket ownership to a
higher level anyio construct, so the listener can be closed from outside a
pending accept.
"""

import errno
import socket
from typing import final

import anyio
import anyio.abc
from anyio.abc import SocketAttribute

# Matches the keep-alive period long-lived HTTP servers use
KEEPALIVE_PERIOD: float = 180.0

# Accept errors that concern a single connection rather than the listener
_TRANSIENT_ACCEPT_ERRNOS = frozenset(
    {errno.ECONNABORTED, errno.EPROTO, errno.EPERM, errno.EINTR}
)


def parse_address(address: str) -> tuple[str, int]:
    """Split a listen address into host and port.

    Accepts ``host:port``, ``:port`` (all interfaces) and ``[v6addr]:port``.

    Args:
        address: The address to parse.

    Returns:
        A ``(host, port)`` tuple. The host is empty for all interfaces.

    Raises:
        ValueError: If the address has no valid port.
    """
    host, sep, port_text = address.rpartition(":")
    if not sep:
        msg = f"address {address!r} is missing a port"
        raise ValueError(msg)

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        port = int(port_text)
    except ValueError:
        msg = f"address {address!r} has an invalid port"
        raise ValueError(msg) from None

    if not 0 <= port <= 65535:  # noqa: PLR2004
        msg = f"address {address!r} port out of range"
        raise ValueError(msg)

    return host, port


def bind_socket(address: str) -> socket.socket:
    """Create a listening TCP socket for an address.

    Args:
        address: The address to bind, see parse_address().

    Returns:
        A bound, listening, non-blocking socket.

    Raises:
        OSError: If the address cannot be resolved or bound.
    """
    host, port = parse_address(address)
    family, type_, proto, _, sockaddr = socket.getaddrinfo(
        host or None,
        port,
        type=socket.SOCK_STREAM,
        flags=socket.AI_PASSIVE,
    )[0]

    sock = socket.socket(family, type_, proto)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
        sock.listen(socket.SOMAXCONN)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


def adopt_socket(fd: int) -> socket.socket:
    """Wrap an inherited listening descriptor in a socket object.

    Args:
        fd: The inherited descriptor.

    Returns:
        A non-blocking socket owning ``fd``.
    """
    sock = socket.socket(fileno=fd)
    sock.setblocking(False)
    return sock


def enable_keepalive(
    stream: anyio.abc.ByteStream, period: float = KEEPALIVE_PERIOD
) -> None:
    """Turn on TCP keep-alive for a stream that exposes a raw socket.

    Streams without a raw TCP socket, such as in-memory fakes, are left alone.
    """
    sock: socket.socket | None = stream.extra(SocketAttribute.raw_socket, None)
    if sock is None or sock.family not in (socket.AF_INET, socket.AF_INET6):
        return

    seconds = max(1, int(period))
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    if hasattr(socket, "TCP_KEEPIDLE"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, seconds)
    elif hasattr(socket, "TCP_KEEPALIVE"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, seconds)
    if hasattr(socket, "TCP_KEEPINTVL"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, seconds)


@final
class SocketTransport:
    """ListenerTransport over a listening socket.

    The transport owns its socket object; closing it does not affect other
    descriptors referring to the same kernel socket, such as the copy kept
    by the supervisor.
    """

    __slots__ = ("_closed", "_sock")

    def __init__(self, sock: socket.socket) -> None:
        sock.setblocking(False)
        self._sock = sock
        self._closed = False

    @property
    def local_address(self) -> tuple[str, int]:
        """Return the bound (host, port) of the socket."""
        sockname = self._sock.getsockname()
        return sockname[0], sockname[1]

    async def accept(self) -> anyio.abc.ByteStream:
        while True:
            if self._closed:
                raise anyio.ClosedResourceError

            await anyio.wait_readable(self._sock)
            try:
                conn, _ = self._sock.accept()
            except BlockingIOError:
                continue
            except OSError as e:
                if self._closed:
                    raise anyio.ClosedResourceError from e
                if e.errno in _TRANSIENT_ACCEPT_ERRNOS:
                    continue
                raise

            try:
                return await anyio.abc.SocketStream.from_socket(conn)
            except ValueError:
                # Peer went away between accept and wrapping
                conn.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        anyio.notify_closing(self._sock)
        self._sock.close()

    def fileno(self) -> int:
        return self._sock.fileno()
