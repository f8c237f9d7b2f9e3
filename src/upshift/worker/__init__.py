"""Worker side of the supervisor/worker model."""

from ._state import State
from ._worker import PARENT_POLL_INTERVAL, DrainReason, Worker

__all__ = ["PARENT_POLL_INTERVAL", "DrainReason", "State", "Worker"]
