import os
import signal
import socket
import subprocess
import sys
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if Path(item.path).is_relative_to(Path(__file__).parent):
            item.add_marker(pytest.mark.integration)


def free_port() -> int:
    """Find an available port by binding to port 0."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def wait_until(
    predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.05
) -> None:
    """Poll ``predicate`` until it returns True or fail the test."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(interval)
    pytest.fail(f"condition not met within {timeout}s")


def request(port: int, payload: bytes, timeout: float = 5.0) -> str:
    """Send ``payload`` to the echo app and return its full reply."""
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as conn:
        conn.sendall(payload)
        conn.shutdown(socket.SHUT_WR)
        chunks: list[bytes] = []
        while chunk := conn.recv(4096):
            chunks.append(chunk)
    return b"".join(chunks).decode()


def try_request(port: int, payload: bytes) -> str | None:
    try:
        return request(port, payload, timeout=1.0)
    except OSError:
        return None


@dataclass
class EchoApp:
    """A supervised echo app running in a subprocess."""

    process: subprocess.Popen[bytes]
    ports: tuple[int, ...]

    def send_signal(self, signum: int) -> None:
        self.process.send_signal(signum)

    def stop(self, timeout: float = 15.0) -> int:
        if self.process.poll() is None:
            self.process.send_signal(signal.SIGTERM)
        return self.process.wait(timeout=timeout)


@pytest.fixture
def echo_app() -> Iterator[Callable[..., EchoApp]]:
    """Start ``fixtures/echo_app.py`` under upshift on fresh ports."""
    started: list[EchoApp] = []

    def start(*, listeners: int = 1, extra_env: dict[str, str] | None = None) -> EchoApp:
        ports = tuple(free_port() for _ in range(listeners))
        env = {**os.environ, **(extra_env or {})}
        process = subprocess.Popen(
            [
                sys.executable,
                str(FIXTURES_DIR / "echo_app.py"),
                *(f"127.0.0.1:{port}" for port in ports),
            ],
            env=env,
        )
        app = EchoApp(process=process, ports=ports)
        started.append(app)
        wait_until(lambda: try_request(ports[0], b"ping") is not None)
        return app

    yield start

    for app in started:
        if app.process.poll() is None:
            app.process.kill()
            _ = app.process.wait()
