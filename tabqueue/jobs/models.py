"""
Job Models

In-memory records for bulk import jobs. A Job is owned by the QueueManager;
workers change it only through its locked update methods so status polls
always read a consistent snapshot.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

logger = logging.getLogger(__name__)


class JobPhase(str, Enum):
    """Job lifecycle phase"""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


TERMINAL_PHASES = frozenset({JobPhase.COMPLETED, JobPhase.FAILED, JobPhase.CANCELLED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class JobError:
    """Failure of a single item"""
    item_index: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {'item_index': self.item_index, 'message': self.message}


@dataclass
class Job:
    """
    One bulk import request and its progress.

    Counters only grow; processed_count + failed_count never exceeds
    total_count, and reaches it for the completed and failed phases.
    """
    owner_id: str
    items: Tuple[Any, ...]
    id: str = field(default_factory=lambda: f"job_{uuid4().hex}")
    phase: JobPhase = JobPhase.QUEUED
    processed_count: int = 0
    failed_count: int = 0
    errors: List[JobError] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    on_progress: Optional[Callable[[Dict[str, Any]], None]] = field(default=None, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def __post_init__(self):
        if not isinstance(self.items, tuple):
            self.items = tuple(self.items)

    @classmethod
    def create(
        cls,
        owner_id: str,
        items: Sequence[Any],
        on_progress: Optional[Callable[[Dict[str, Any]], None]] = None
    ) -> 'Job':
        return cls(owner_id=owner_id, items=tuple(items), on_progress=on_progress)

    @property
    def total_count(self) -> int:
        return len(self.items)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def remaining_count(self) -> int:
        with self._lock:
            return self.total_count - self.processed_count - self.failed_count

    def mark_processing(self) -> None:
        """Move a queued job to processing and record when it started"""
        with self._lock:
            if self.phase is not JobPhase.QUEUED:
                raise RuntimeError(f"Job {self.id} cannot start from phase {self.phase.value}")
            self.phase = JobPhase.PROCESSING
            self.started_at = _utcnow()
        self._notify()

    def record_success(self) -> None:
        with self._lock:
            self._check_active()
            self.processed_count += 1
        self._notify()

    def record_failure(self, item_index: int, message: str) -> None:
        with self._lock:
            self._check_active()
            self.errors.append(JobError(item_index=item_index, message=message))
            self.failed_count += 1
        self._notify()

    def fail_remaining(self, item_index: int, message: str) -> None:
        """
        Count every item not yet finished as failed.

        Used when the worker itself breaks down, so the job can still reach a
        terminal phase with consistent counters.
        """
        with self._lock:
            if self.phase is not JobPhase.PROCESSING:
                raise RuntimeError(f"Job {self.id} is not processing (phase {self.phase.value})")
            remaining = self.total_count - self.processed_count - self.failed_count
            if remaining > 0:
                self.errors.append(JobError(item_index=item_index, message=message))
                self.failed_count += remaining
        self._notify()

    def finish(self, cancelled: bool = False, failed: bool = False) -> JobPhase:
        """
        Enter the terminal phase.

        Returns:
            cancelled if requested, failed if requested or every item failed,
            otherwise completed (possibly with errors for partial success)
        """
        with self._lock:
            if self.phase.is_terminal:
                raise RuntimeError(f"Job {self.id} already finished as {self.phase.value}")

            if cancelled:
                self.phase = JobPhase.CANCELLED
            elif failed or (self.failed_count > 0 and self.failed_count == self.total_count):
                self.phase = JobPhase.FAILED
            else:
                self.phase = JobPhase.COMPLETED
            self.completed_at = _utcnow()
            phase = self.phase
        self._notify()
        return phase

    def cancel_queued(self) -> bool:
        """Cancel a job that never started; False if it is no longer queued"""
        with self._lock:
            if self.phase is not JobPhase.QUEUED:
                return False
            self.phase = JobPhase.CANCELLED
            self.completed_at = _utcnow()
        self._notify()
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Consistent snapshot of the job, without its items"""
        with self._lock:
            done = self.processed_count + self.failed_count
            snapshot = {
                'id': self.id,
                'owner_id': self.owner_id,
                'phase': self.phase.value,
                'total_count': self.total_count,
                'processed_count': self.processed_count,
                'failed_count': self.failed_count,
                'errors': [error.to_dict() for error in self.errors],
                'created_at': _isoformat(self.created_at),
                'started_at': _isoformat(self.started_at),
                'completed_at': _isoformat(self.completed_at),
                'progress': round(100.0 * done / self.total_count, 1) if self.total_count else 0.0,
                'estimated_time_remaining': self._estimate_remaining(done)
            }
        return snapshot

    def _estimate_remaining(self, done: int) -> Optional[int]:
        """Seconds left at the current processing rate"""
        if self.phase is not JobPhase.PROCESSING or not self.started_at or done == 0:
            return None
        elapsed = (_utcnow() - self.started_at).total_seconds()
        return int(round(elapsed / done * (self.total_count - done)))

    def _check_active(self) -> None:
        if self.phase is not JobPhase.PROCESSING:
            raise RuntimeError(f"Job {self.id} is not processing (phase {self.phase.value})")
        if self.processed_count + self.failed_count >= self.total_count:
            raise RuntimeError(f"Job {self.id} has no unfinished items")

    def _notify(self) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(self.to_dict())
        except Exception as e:
            logger.error(f"Error calling progress callback for job {self.id}: {e}")
