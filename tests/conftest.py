"""Shared test fixtures for upshift tests."""

import io
import logging
import textwrap
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from upshift.utils import create_logger

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

# A binary that answers the sanity check correctly
GOOD_BINARY = """\
import os
import sys

sys.stdout.write(os.environ.get("UPSHIFT_BIN_CHECK", ""))
"""

# A binary that starts but prints the wrong answer
WRONG_ANSWER_BINARY = """\
print("definitely not the token")
"""

# A binary that never answers
HANGING_BINARY = """\
import time

time.sleep(60)
"""

# A binary that answers but then fails
FAILING_BINARY = """\
import os
import sys

sys.stdout.write(os.environ.get("UPSHIFT_BIN_CHECK", ""))
sys.exit(3)
"""

WriteScript = Callable[[str, str], Path]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(log_stream: io.StringIO) -> "FilteringBoundLogger":
    """Logger writing debug level text into ``log_stream``."""
    return create_logger(level=logging.DEBUG, stream=log_stream)


@pytest.fixture
def write_script(tmp_path: Path) -> WriteScript:
    """Write a Python script that stands in for a binary."""

    def write(name: str, source: str) -> Path:
        path = tmp_path / name
        _ = path.write_text(textwrap.dedent(source))
        path.chmod(0o755)
        return path

    return write


@pytest.fixture(autouse=True)
def _clean_upshift_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep handshake and logging variables of the test runner out of tests."""
    for name in (
        "UPSHIFT_IS_WORKER",
        "UPSHIFT_WORKER_ID",
        "UPSHIFT_NUM_FDS",
        "UPSHIFT_FDS",
        "UPSHIFT_BIN_ID",
        "UPSHIFT_BIN_PATH",
        "UPSHIFT_BIN_CHECK",
        "UPSHIFT_DEBUG",
        "UPSHIFT_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
