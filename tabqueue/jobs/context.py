"""
Execution context handed to the item pipeline
"""

import threading
from dataclasses import dataclass, field
from typing import Optional


class CancellationToken:
    """
    Cooperative cancellation flag.

    Set by the QueueManager (possibly from another thread), polled by the job
    worker between items. In-flight downstream calls are never interrupted.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Job cancelled by user") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class ItemContext:
    """Identifies the item being processed"""
    job_id: str
    owner_id: str
    item_index: int
    token: CancellationToken = field(default_factory=CancellationToken, compare=False)
