"""upshift exceptions."""

from pathlib import Path
from typing import Any


class UpshiftError(Exception):
    """Base exception for upshift errors."""


class UnsupportedPlatformError(UpshiftError):
    """Raised when the OS lacks the primitives needed for socket handoff."""

    def __init__(self, message: str, *, platform: str) -> None:
        """Initialize with error message and platform name."""
        super().__init__(message)
        self.platform: str = platform


class HandshakeError(UpshiftError):
    """Raised when the worker handshake environment is missing or malformed."""


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigError(UpshiftError):
    """Base exception for configuration errors."""


class ConfigValidationError(ConfigError):
    """Raised when configuration fails validation."""

    def __init__(
        self,
        message: str,
        *,
        key: str,
        value: Any,  # pyright: ignore[reportAny,reportExplicitAny]
        expected: str,
    ) -> None:
        """Initialize with error message and validation context."""
        super().__init__(message)
        self.key: str = key
        self.value: Any = value  # pyright: ignore[reportExplicitAny]
        self.expected: str = expected


# =============================================================================
# Supervisor Exceptions
# =============================================================================


class SupervisorError(UpshiftError):
    """Base exception for supervisor errors."""


class WorkerStartError(SupervisorError):
    """Raised when a worker process fails to start.

    Attributes:
        worker_id: The id the worker would have been given.
        cause: The underlying exception that caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        worker_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and worker context.

        Args:
            message: Human-readable error message.
            worker_id: The id the worker would have been given.
            cause: The underlying exception that caused the failure.
        """
        super().__init__(message)
        self.worker_id: str | None = worker_id
        self.cause: Exception | None = cause


class WorkerStopError(SupervisorError):
    """Raised when a worker cannot be signalled or killed.

    Attributes:
        worker_id: The id of the worker that failed to stop.
        cause: The underlying exception that caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        worker_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and worker context.

        Args:
            message: Human-readable error message.
            worker_id: The id of the worker that failed to stop.
            cause: The underlying exception that caused the failure.
        """
        super().__init__(message)
        self.worker_id: str | None = worker_id
        self.cause: Exception | None = cause


# =============================================================================
# Upgrade Exceptions
# =============================================================================


class FetchError(UpshiftError):
    """Raised by fetchers when a binary cannot be retrieved this cycle."""


class UpgradeError(UpshiftError):
    """Base exception for upgrade pipeline failures.

    Attributes:
        path: Staged binary path involved in the failure, if any.
    """

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        """Initialize with error message and staged path."""
        super().__init__(message)
        self.path: Path | None = path


class PreUpgradeError(UpgradeError):
    """Raised when the user pre-upgrade hook rejects a staged binary."""


class SanityCheckError(UpgradeError):
    """Raised when a staged binary fails its self test.

    Attributes:
        output: What the binary wrote to stdout, if anything.
        timed_out: Whether the check hit its time bound.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        output: str = "",
        timed_out: bool = False,
    ) -> None:
        """Initialize with error message and check results."""
        super().__init__(message, path=path)
        self.output: str = output
        self.timed_out: bool = timed_out


class InstallError(UpgradeError):
    """Raised when a staged binary cannot be written or moved into place."""
