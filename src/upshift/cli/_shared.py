"""Exit codes and error reporting shared by the CLI commands."""

from enum import IntEnum
from typing import Never

from rich.console import Console

__all__ = ["ExitCode", "exit_with_error", "get_error_console"]


class ExitCode(IntEnum):
    """Process exit statuses of the ``upshift`` command."""

    SUCCESS = 0
    CHECK_FAILED = 1
    VALIDATION_ERROR = 2
    NOT_FOUND = 3
    IO_ERROR = 4
    INTERNAL_ERROR = 5


def get_error_console() -> Console:
    """Return a console that writes to stderr."""
    return Console(stderr=True)


def exit_with_error(
    message: str,
    code: ExitCode = ExitCode.INTERNAL_ERROR,
    *,
    detail: str | None = None,
    console: Console | None = None,
) -> Never:
    """Report a failed command on stderr and exit.

    Args:
        message: One line saying what went wrong.
        code: Exit status.
        detail: Extra text printed verbatim below the message, such as a
            binary's output.
        console: Console to print to. A stderr console if None.

    Raises:
        SystemExit: Always, with ``code``.
    """
    out = console if console is not None else get_error_console()
    out.print(f"[red]Error:[/red] {message}", highlight=False)
    if detail:
        out.print(detail.rstrip(), markup=False, highlight=False)
    raise SystemExit(code)
