"""Event sink implementations for the supervisor.

This module provides concrete implementations of the EventSink protocol:
- LogEventSink: Structured log entries (default)
- ConsoleEventSink: Colored console lines for interactive use
"""

from typing import TYPE_CHECKING, final

from rich.console import Console
from rich.style import Style
from rich.text import Text

from ._models import WorkerEvent, WorkerEventType

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

_WARNING_EVENTS = frozenset(
    {
        WorkerEventType.CRASHED,
        WorkerEventType.KILLED,
        WorkerEventType.UPGRADE_FAILED,
    }
)


@final
class LogEventSink:
    """Event sink that writes each event as a structured log entry.

    Crashes, kills and rejected upgrades are logged as warnings, everything
    else at info level.
    """

    __slots__ = ("_logger",)

    def __init__(self, logger: "FilteringBoundLogger") -> None:
        self._logger = logger

    async def write_event(self, event: WorkerEvent) -> None:
        log = (
            self._logger.warning
            if event.event_type in _WARNING_EVENTS
            else self._logger.info
        )
        log(
            f"worker_{event.event_type.value}",
            worker_id=event.worker_id,
            worker_pid=event.pid,
            exit_code=event.exit_code,
            message=event.message,
        )


@final
class ConsoleEventSink:
    """Event sink that prints formatted, color coded lines.

    Formats events as `[worker:id] EVENT (pid=...) - message`.
    """

    __slots__ = ("_console", "_event_styles")

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the event sink.

        Args:
            console: Rich Console instance for output. If None, creates one
                writing to stderr.
        """
        self._console = console or Console(stderr=True)
        self._event_styles: dict[WorkerEventType, Style] = {
            WorkerEventType.STARTED: Style(color="green", bold=True),
            WorkerEventType.EXITED: Style(color="yellow"),
            WorkerEventType.CRASHED: Style(color="red", bold=True),
            WorkerEventType.RESTARTING: Style(color="cyan"),
            WorkerEventType.TERMINATING: Style(color="magenta"),
            WorkerEventType.KILLED: Style(color="red"),
            WorkerEventType.UPGRADED: Style(color="green"),
            WorkerEventType.UPGRADE_FAILED: Style(color="red", dim=True),
        }

    async def write_event(self, event: WorkerEvent) -> None:
        style = self._event_styles.get(event.event_type, Style())

        text = Text()
        label = f"[worker:{event.worker_id}]" if event.worker_id else "[supervisor]"
        _ = text.append(label, style=Style(color="blue", bold=True))
        _ = text.append(" ")
        _ = text.append(event.event_type.value.upper(), style=style)

        if event.pid is not None:
            _ = text.append(f" (pid={event.pid})", style=Style(dim=True))

        if event.exit_code is not None:
            _ = text.append(f" exit_code={event.exit_code}", style=Style(dim=True))

        if event.message:
            _ = text.append(f" - {event.message}", style=style)

        self._console.print(text)
