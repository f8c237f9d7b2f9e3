"""Process handshake between supervisor and worker.

The supervisor describes each worker it spawns through environment
variables: which binary is running, which worker instance this is, and
which inherited descriptors hold the listening sockets, in address order.
"""

import sys
from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path

from upshift.exceptions import HandshakeError

ENV_IS_WORKER = "UPSHIFT_IS_WORKER"
ENV_WORKER_ID = "UPSHIFT_WORKER_ID"
ENV_NUM_FDS = "UPSHIFT_NUM_FDS"
ENV_FDS = "UPSHIFT_FDS"
ENV_BIN_ID = "UPSHIFT_BIN_ID"
ENV_BIN_PATH = "UPSHIFT_BIN_PATH"
ENV_BIN_CHECK = "UPSHIFT_BIN_CHECK"

IS_WORKER_VALUE = "1"

# First inherited descriptor when the parent does not list them explicitly
FIRST_INHERITED_FD = 3


class WorkerExit(IntEnum):
    """Worker exit statuses understood by the supervisor."""

    CLEAN = 0
    ERROR = 1
    RESTART = 75


HANDSHAKE_VARS: tuple[str, ...] = (
    ENV_IS_WORKER,
    ENV_WORKER_ID,
    ENV_NUM_FDS,
    ENV_FDS,
    ENV_BIN_ID,
    ENV_BIN_PATH,
)


@dataclass(frozen=True, slots=True)
class ProcessDescriptor:
    """Handshake state passed from supervisor to worker.

    Attributes:
        worker_id: Identifier of this worker instance.
        bin_id: Content id of the binary being executed.
        fds: Inherited listener descriptors, in configured address order.
        bin_path: Filesystem path of the binary.
    """

    worker_id: str
    bin_id: str
    fds: tuple[int, ...]
    bin_path: Path

    @property
    def num_fds(self) -> int:
        """Return the number of inherited listener descriptors."""
        return len(self.fds)

    def to_env(self) -> dict[str, str]:
        """Encode the descriptor as worker environment variables."""
        return {
            ENV_IS_WORKER: IS_WORKER_VALUE,
            ENV_WORKER_ID: self.worker_id,
            ENV_NUM_FDS: str(self.num_fds),
            ENV_FDS: ",".join(str(fd) for fd in self.fds),
            ENV_BIN_ID: self.bin_id,
            ENV_BIN_PATH: str(self.bin_path),
        }

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "ProcessDescriptor":
        """Decode a descriptor from a worker's environment.

        Args:
            environ: The environment, usually ``os.environ``.

        Returns:
            The decoded descriptor.

        Raises:
            HandshakeError: If a variable is missing or malformed.
        """
        if environ.get(ENV_IS_WORKER) != IS_WORKER_VALUE:
            msg = f"{ENV_IS_WORKER} is not set, not a worker process"
            raise HandshakeError(msg)

        missing = [
            name
            for name in (ENV_WORKER_ID, ENV_NUM_FDS, ENV_BIN_ID, ENV_BIN_PATH)
            if name not in environ
        ]
        if missing:
            msg = f"handshake variables missing: {', '.join(missing)}"
            raise HandshakeError(msg)

        return cls(
            worker_id=environ[ENV_WORKER_ID],
            bin_id=environ[ENV_BIN_ID],
            fds=inherited_fds(environ),
            bin_path=Path(environ[ENV_BIN_PATH]),
        )


def is_worker(environ: Mapping[str, str]) -> bool:
    """Return True if the environment marks this process as a worker."""
    return environ.get(ENV_IS_WORKER) == IS_WORKER_VALUE


def inherited_fds(environ: Mapping[str, str]) -> tuple[int, ...]:
    """Return the listener descriptors a parent handed to this process.

    Uses the explicit descriptor list when present, otherwise the count
    starting at descriptor 3.

    Raises:
        HandshakeError: If the count or list is malformed or disagree.
    """
    try:
        count = int(environ.get(ENV_NUM_FDS, "0"))
    except ValueError:
        msg = f"{ENV_NUM_FDS} is not a number: {environ[ENV_NUM_FDS]!r}"
        raise HandshakeError(msg) from None

    listed = environ.get(ENV_FDS, "")
    if not listed:
        return tuple(range(FIRST_INHERITED_FD, FIRST_INHERITED_FD + count))

    try:
        fds = tuple(int(part) for part in listed.split(","))
    except ValueError:
        msg = f"{ENV_FDS} is malformed: {listed!r}"
        raise HandshakeError(msg) from None

    if len(fds) != count:
        msg = f"{ENV_FDS} lists {len(fds)} descriptors but {ENV_NUM_FDS} is {count}"
        raise HandshakeError(msg)
    return fds


def strip_handshake(environ: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of ``environ`` without handshake variables."""
    return {k: v for k, v in environ.items() if k not in HANDSHAKE_VARS}


def discover_binary() -> Path:
    """Return the path of the running binary.

    Frozen applications are their own executable; otherwise the binary is
    the script the interpreter was started with.
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve()
    return Path(sys.argv[0]).resolve()


def launch_command(bin_path: Path, args: list[str] | None = None) -> list[str]:
    """Build the command line that runs ``bin_path``.

    Scripts are run through the current interpreter; frozen applications
    are run directly.

    Args:
        bin_path: The binary to run.
        args: Arguments to pass. Defaults to this process's arguments.
    """
    extra = sys.argv[1:] if args is None else args
    if getattr(sys, "frozen", False):
        return [str(bin_path), *extra]
    return [sys.executable, str(bin_path), *extra]
