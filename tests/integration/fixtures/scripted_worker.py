"""Stand-in worker binary for supervisor tests.

It speaks the handshake by hand instead of using upshift, so supervisor
behaviour can be tested against precise worker misbehaviour. WORKER_MODE
selects what it does; each start is recorded as MARKER_DIR/worker-<id>.json
once its signal handlers are in place.
"""

import json
import os
import signal
import socket
import sys
import time
from pathlib import Path

token = os.environ.get("UPSHIFT_BIN_CHECK")
if token:
    sys.stdout.write(token)
    sys.exit(0)

VERSION = "v1"


def local_port(fd: int) -> int:
    with socket.socket(fileno=os.dup(fd)) as sock:
        return sock.getsockname()[1]


worker_id = os.environ["UPSHIFT_WORKER_ID"]
mode = os.environ.get("WORKER_MODE", "serve")
fds = [int(fd) for fd in os.environ["UPSHIFT_FDS"].split(",")]

if mode == "stubborn":
    signal.signal(signal.SIGTERM, signal.SIG_IGN)
    signal.signal(signal.SIGUSR2, signal.SIG_IGN)
else:
    signal.signal(signal.SIGUSR2, lambda *_: sys.exit(75))
    signal.signal(signal.SIGTERM, lambda *_: sys.exit(0))

marker_dir = Path(os.environ["MARKER_DIR"])
partial = marker_dir / f".worker-{worker_id}.json"
partial.write_text(
    json.dumps(
        {
            "version": VERSION,
            "bin_id": os.environ["UPSHIFT_BIN_ID"],
            "num_fds": int(os.environ["UPSHIFT_NUM_FDS"]),
            "ports": [local_port(fd) for fd in fds],
        }
    )
)
partial.rename(marker_dir / f"worker-{worker_id}.json")

if mode == "clean":
    sys.exit(0)
if mode == "crash":
    sys.exit(3)
if mode == "restart-once":
    sys.exit(75 if worker_id == "1" else 0)

while True:
    time.sleep(0.05)
