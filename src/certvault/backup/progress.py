"""Progress reporting and cooperative cancellation for long-running operations."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class ProgressEvent:
    """Progress of a backup or restore.

    Parameters
    ----------
    item:
        The file or archive entry about to be processed.
    completed:
        Number of items already processed.
    total:
        Total number of items.
    """

    item: str
    completed: int
    total: int

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0
        return 100.0 * self.completed / self.total


ProgressSink = Callable[[ProgressEvent], None]


class CancellationToken:
    """Thread-safe flag a caller sets to stop an operation in progress.

    The operation checks the token before each item and stops cleanly
    once it has been cancelled.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
