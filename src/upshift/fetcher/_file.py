"""Fetcher that watches a file on disk."""

from pathlib import Path
from typing import final

import anyio

from upshift.exceptions import FetchError


@final
class FileFetcher:
    """Fetch a binary from a local path whenever the file changes.

    A change is a different size or modification time than at the last
    fetch. The first fetch always returns the file's content.
    """

    __slots__ = ("_last", "path")

    def __init__(self, path: str | Path) -> None:
        self.path = anyio.Path(path)
        self._last: tuple[int, int] | None = None

    async def init(self) -> None:
        if not await self.path.parent.is_dir():
            msg = f"directory of {self.path} does not exist"
            raise FetchError(msg)

    async def fetch(self) -> bytes | None:
        try:
            stat = await self.path.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            msg = f"failed to stat {self.path}: {e}"
            raise FetchError(msg) from e

        marker = (stat.st_size, stat.st_mtime_ns)
        if marker == self._last:
            return None

        try:
            data = await self.path.read_bytes()
        except OSError as e:
            msg = f"failed to read {self.path}: {e}"
            raise FetchError(msg) from e

        self._last = marker
        return data
