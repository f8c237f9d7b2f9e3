"""Content based binary identity."""

import hashlib
from pathlib import Path

_CHUNK_SIZE = 1 << 16


def binary_id(data: bytes) -> str:
    """Return the id of a binary's content.

    The id depends on the bytes only, so refetching unchanged content
    always yields the same id.
    """
    return hashlib.sha1(data, usedforsecurity=False).hexdigest()


def file_binary_id(path: Path) -> str:
    """Return the id of the binary stored at ``path``.

    Raises:
        OSError: If the file cannot be read.
    """
    digest = hashlib.sha1(usedforsecurity=False)
    with path.open("rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            digest.update(chunk)
    return digest.hexdigest()
