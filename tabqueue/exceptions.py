"""
TabQueue exceptions

InvalidInput is raised synchronously on submission. DownstreamError is raised
by rate-limited provider calls and recorded per item by the job worker.
Cancelled is raised to callers still waiting on a limiter that was shut down.
NotFound is raised for unknown job ids.
"""

from typing import Optional


class TabQueueError(Exception):
    """Base exception for tabqueue"""
    pass


class InvalidInput(TabQueueError):
    """Malformed submission"""
    pass


class NotFound(TabQueueError):
    """Unknown job id"""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class Cancelled(TabQueueError):
    """Work was stopped before it ran"""
    pass


class DownstreamError(TabQueueError):
    """
    A single downstream call failed.

    Args:
        message: Human readable failure description
        service_name: Name of the rate-limited service the call went through
        retryable: Whether repeating the call may succeed
    """

    def __init__(
        self,
        message: str,
        service_name: Optional[str] = None,
        retryable: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.service_name = service_name
        self.retryable = retryable

    def __str__(self) -> str:
        if self.service_name:
            return f"{self.service_name}: {self.message}"
        return self.message
