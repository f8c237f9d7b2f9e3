"""The command-line interface for upshift."""
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing

import os
import signal
from functools import partial
from pathlib import Path
from typing import Annotated

import anyio
from cyclopts import App, Parameter
from rich.console import Console

from upshift.config import DEFAULT_RESTART_SIGNAL, DEFAULT_SANITY_CHECK_TIMEOUT
from upshift.exceptions import SanityCheckError
from upshift.upgrade import file_binary_id, run_sanity_check

from ._shared import ExitCode, exit_with_error

HELP = "Graceful restarts and live upgrades for network services."


def parse_signal(name: str) -> signal.Signals:
    """Parse a signal name such as ``USR2``, ``SIGUSR2`` or ``12``.

    Raises:
        ValueError: If the name does not denote a signal.
    """
    if name.isdigit():
        return signal.Signals(int(name))
    upper = name.upper()
    if not upper.startswith("SIG"):
        upper = f"SIG{upper}"
    try:
        return signal.Signals[upper]
    except KeyError:
        msg = f"unknown signal: {name}"
        raise ValueError(msg) from None


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    """Build the CLI application.

    Args:
        console: Console for regular output. Defaults to stdout.
        error_console: Console for errors. Defaults to stderr.
        exit_on_error: Exit on argument parsing errors instead of raising.
    """
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    app = App(
        name="upshift",
        help=HELP,
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )

    @app.command(name="check")
    def check(  # pyright: ignore[reportUnusedFunction]
        binary: Annotated[Path, Parameter(help="Binary to check.")],
        *,
        timeout: Annotated[
            float, Parameter(help="Seconds the binary gets to answer.")
        ] = DEFAULT_SANITY_CHECK_TIMEOUT,
    ) -> None:
        """Run the upgrade sanity check against a binary.

        The binary is started with UPSHIFT_BIN_CHECK set and must print the
        token back and exit zero, exactly as it would before an upgrade.
        """
        if not binary.is_file():
            exit_with_error(
                f"{binary} does not exist", ExitCode.NOT_FOUND, console=error_console
            )
        try:
            anyio.run(partial(run_sanity_check, binary, timeout=timeout))
        except SanityCheckError as e:
            exit_with_error(
                str(e),
                ExitCode.CHECK_FAILED,
                detail=e.output,
                console=error_console,
            )

        console.print(f"[green]ok[/green] {binary} passed the sanity check")

    @app.command(name="id")
    def show_id(  # pyright: ignore[reportUnusedFunction]
        binary: Annotated[Path, Parameter(help="Binary to identify.")],
    ) -> None:
        """Print the content id of a binary."""
        try:
            bin_id = file_binary_id(binary)
        except FileNotFoundError:
            exit_with_error(
                f"{binary} does not exist", ExitCode.NOT_FOUND, console=error_console
            )
        except OSError as e:
            exit_with_error(
                f"cannot read {binary}: {e}", ExitCode.IO_ERROR, console=error_console
            )
        console.print(bin_id, markup=False, highlight=False)

    @app.command(name="restart")
    def restart(  # pyright: ignore[reportUnusedFunction]
        pid: Annotated[int, Parameter(help="Supervisor process id.")],
        *,
        signal_name: Annotated[
            str, Parameter(name="--signal", help="Restart signal the supervisor uses.")
        ] = DEFAULT_RESTART_SIGNAL.name,
    ) -> None:
        """Ask a running supervisor for a graceful restart."""
        try:
            signum = parse_signal(signal_name)
        except ValueError as e:
            exit_with_error(str(e), ExitCode.VALIDATION_ERROR, console=error_console)

        try:
            os.kill(pid, signum)
        except ProcessLookupError:
            exit_with_error(
                f"no process with pid {pid}", ExitCode.NOT_FOUND, console=error_console
            )
        except PermissionError as e:
            exit_with_error(
                f"cannot signal {pid}: {e}", ExitCode.IO_ERROR, console=error_console
            )

        console.print(f"sent {signum.name} to {pid}")

    return app


def main() -> None:
    """Default entrypoint for the `upshift` CLI."""
    app = create_app()
    app()


if __name__ == "__main__":
    main()
