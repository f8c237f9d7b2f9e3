"""Protocol definitions for binary fetchers."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class Fetcher(Protocol):
    """Protocol for a source of new binaries.

    The supervisor calls init() once before its fetch loop starts and then
    fetch() at most once per ``Config.min_fetch_interval``. Fetchers do not
    need to compare content with the running binary; the supervisor ignores
    bytes whose binary id matches the current one.
    """

    async def init(self) -> None:
        """Prepare the fetcher.

        Raises:
            FetchError: If the fetcher cannot be used at all. The supervisor
                then runs without a fetch loop.
        """
        ...

    async def fetch(self) -> bytes | None:
        """Return new binary content, or None if there is no update.

        Raises:
            FetchError: If this cycle failed. The supervisor logs the error
                and tries again next cycle.
        """
        ...
