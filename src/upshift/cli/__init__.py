"""The upshift command-line interface."""

from ._app import create_app, main, parse_signal
from ._shared import ExitCode, exit_with_error

__all__ = ["ExitCode", "create_app", "exit_with_error", "main", "parse_signal"]
