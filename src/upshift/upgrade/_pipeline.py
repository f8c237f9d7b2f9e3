"""Upgrade pipeline: validate, stage and install fetched binaries."""

from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, final

import anyio
import anyio.to_thread

from upshift.exceptions import PreUpgradeError

from ._identity import binary_id
from ._installer import BinaryInstaller, StagedBinary, default_installer
from ._sanity import run_sanity_check

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger


@final
class UpgradePipeline:
    """Turn fetched bytes into the binary at ``target``.

    The pipeline stages the bytes, runs the pre-upgrade hook and the sanity
    check against the staged file and only then moves it over the target.
    Any failure discards the staged file and leaves the target untouched.

    Attributes:
        target: Path of the running binary.
        current_id: Content id of the binary at target.
    """

    __slots__ = (
        "_installer",
        "_lock",
        "_logger",
        "_pre_upgrade",
        "_sanity_check_timeout",
        "current_id",
        "target",
    )

    def __init__(  # noqa: PLR0913
        self,
        target: Path,
        current_id: str,
        *,
        logger: "FilteringBoundLogger",
        pre_upgrade: Callable[[Path], Any] | None = None,
        sanity_check_timeout: float = 5.0,
        installer: BinaryInstaller | None = None,
    ) -> None:
        self.target = target
        self.current_id = current_id
        self._logger = logger
        self._pre_upgrade = pre_upgrade
        self._sanity_check_timeout = sanity_check_timeout
        self._installer = installer if installer is not None else default_installer()
        self._lock = anyio.Lock()

    def is_new(self, data: bytes) -> bool:
        """Return True if ``data`` differs from the current binary."""
        return binary_id(data) != self.current_id

    async def apply(self, data: bytes) -> bool:
        """Install ``data`` as the new binary if it is new and valid.

        Only one upgrade runs at a time; concurrent calls wait their turn.

        Args:
            data: Fetched binary content.

        Returns:
            True if the binary was replaced, False if the content is
            unchanged.

        Raises:
            UpgradeError: If staging, validation or installation failed.
                The target is unchanged in that case.
        """
        async with self._lock:
            if not self.is_new(data):
                self._logger.debug("binary_unchanged", bin_id=self.current_id)
                return False

            staged = await anyio.to_thread.run_sync(self._installer.stage, data)
            self._logger.debug(
                "binary_staged",
                path=str(staged.path),
                bin_id=staged.bin_id,
                size=staged.size,
            )

            try:
                await self._validate(staged)
                await anyio.to_thread.run_sync(
                    self._installer.install, staged, self.target
                )
            except BaseException:
                with anyio.CancelScope(shield=True):
                    await anyio.to_thread.run_sync(self._installer.discard, staged)
                raise

            self._logger.info(
                "binary_upgraded",
                previous_id=self.current_id,
                bin_id=staged.bin_id,
                path=str(self.target),
            )
            self.current_id = staged.bin_id
            return True

    async def _validate(self, staged: StagedBinary) -> None:
        if self._pre_upgrade is not None:
            try:
                await anyio.to_thread.run_sync(self._pre_upgrade, staged.path)
            except Exception as e:
                msg = f"pre-upgrade hook rejected binary: {e}"
                raise PreUpgradeError(msg, path=staged.path) from e

        await run_sanity_check(staged.path, timeout=self._sanity_check_timeout)

