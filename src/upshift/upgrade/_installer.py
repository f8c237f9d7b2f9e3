"""Staging and installing binaries on disk.

Platform specific file handling lives behind the BinaryInstaller protocol so
the upgrade pipeline never branches on the platform itself.
"""

import errno
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, final, runtime_checkable

from upshift.exceptions import InstallError, UnsupportedPlatformError

from ._identity import binary_id

STAGED_PREFIX = "upshift-"
EXECUTABLE_MODE = 0o755


@dataclass(frozen=True, slots=True)
class StagedBinary:
    """A fetched binary written to a temporary path.

    Attributes:
        path: Temporary location of the binary.
        bin_id: Content id of the binary.
        size: Size in bytes.
    """

    path: Path
    bin_id: str
    size: int


@runtime_checkable
class BinaryInstaller(Protocol):
    """Protocol for platform specific binary file handling."""

    def stage(self, data: bytes) -> StagedBinary:
        """Write ``data`` to a temporary executable file.

        Raises:
            InstallError: If the file cannot be written.
        """
        ...

    def install(self, staged: StagedBinary, target: Path) -> None:
        """Atomically replace ``target`` with the staged binary.

        Raises:
            InstallError: If the binary cannot be moved into place.
        """
        ...

    def discard(self, staged: StagedBinary) -> None:
        """Remove a staged binary that will not be installed."""
        ...


@final
class PosixInstaller:
    """BinaryInstaller for POSIX systems.

    Staged files are executable and owned by the running user. Installing
    renames over the target, falling back to a copy within the target's
    directory when the staging area is on another filesystem, and syncs
    afterwards to commit the move.
    """

    __slots__ = ("staging_dir",)

    def __init__(self, staging_dir: Path | None = None) -> None:
        self.staging_dir = staging_dir

    def stage(self, data: bytes) -> StagedBinary:
        try:
            fd, name = tempfile.mkstemp(prefix=STAGED_PREFIX, dir=self.staging_dir)
        except OSError as e:
            msg = f"failed to create staging file: {e}"
            raise InstallError(msg) from e

        path = Path(name)
        try:
            with os.fdopen(fd, "wb") as f:
                _ = f.write(data)
                os.fchmod(f.fileno(), EXECUTABLE_MODE)
                os.fchown(f.fileno(), os.getuid(), os.getgid())
        except OSError as e:
            path.unlink(missing_ok=True)
            msg = f"failed to write staging file {path}: {e}"
            raise InstallError(msg, path=path) from e

        return StagedBinary(path=path, bin_id=binary_id(data), size=len(data))

    def install(self, staged: StagedBinary, target: Path) -> None:
        try:
            os.replace(staged.path, target)
        except OSError as e:
            if e.errno != errno.EXDEV:
                msg = f"failed to move {staged.path} to {target}: {e}"
                raise InstallError(msg, path=staged.path) from e
            self._copy_replace(staged.path, target)

        os.sync()

    def _copy_replace(self, source: Path, target: Path) -> None:
        partial = target.with_name(f".{target.name}.{STAGED_PREFIX}partial")
        try:
            _ = shutil.copy2(source, partial)
            os.replace(partial, target)
        except OSError as e:
            partial.unlink(missing_ok=True)
            msg = f"failed to copy {source} to {target}: {e}"
            raise InstallError(msg, path=source) from e
        source.unlink(missing_ok=True)

    def discard(self, staged: StagedBinary) -> None:
        staged.path.unlink(missing_ok=True)


def default_installer() -> BinaryInstaller:
    """Return the installer for the current platform.

    Raises:
        UnsupportedPlatformError: If no installer exists for this platform.
    """
    if os.name == "posix":
        return PosixInstaller()
    msg = f"binary installation is not supported on {os.name}"
    raise UnsupportedPlatformError(msg, platform=os.name)
