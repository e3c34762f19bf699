"""
Job Queue

Admission control for bulk import jobs: accepts submissions, runs at most
max_concurrent_jobs workers at a time in submission order, answers status
queries and handles cancellation. Finished jobs are kept for a retention
window so late polls still see the outcome, then evicted by a reaper sweep.
"""

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from functools import partial
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

from tabqueue.exceptions import InvalidInput, NotFound
from tabqueue.jobs.models import Job, JobPhase
from tabqueue.jobs.registry import RateLimiterRegistry
from tabqueue.jobs.worker import ItemProcessor, JobWorker

logger = logging.getLogger(__name__)


@dataclass
class QueueConfig:
    """Queue configuration"""
    # Concurrency
    max_concurrent_jobs: int = 2
    max_items_per_job: int = 10000

    # Retention of finished jobs
    retention: float = 86400.0  # seconds
    reap_interval: float = 3600.0  # seconds

    # Graceful shutdown
    shutdown_timeout: float = 30.0

    # Polling used by wait_for/join
    poll_interval: float = 0.05

    @classmethod
    def from_config(cls, config) -> 'QueueConfig':
        """Build from the 'queue' section of a TabQueueConfig"""
        queue_config = config.get_queue_config()
        return cls(
            max_concurrent_jobs=int(queue_config.get('max_concurrent_jobs', 2)),
            max_items_per_job=int(queue_config.get('max_items_per_job', 10000)),
            retention=float(queue_config.get('retention_seconds', 86400)),
            reap_interval=float(queue_config.get('reap_interval_seconds', 3600)),
            shutdown_timeout=float(queue_config.get('shutdown_timeout_seconds', 30))
        )


class QueueManager:
    """
    Queue for bulk import jobs.

    Provides methods for:
    - Submitting jobs (returns immediately)
    - Job and queue status
    - Cancellation
    - Eviction of finished jobs

    submit() must be called from the event loop that runs the workers; the
    status methods and cancel() may be called from any thread.

    Usage:
        manager = QueueManager(pipeline, registry, QueueConfig(max_concurrent_jobs=2))
        await manager.start()

        job_id = manager.submit('user_123', tabs)
        manager.get_job_status(job_id)
        manager.cancel(job_id)

        await manager.shutdown()
    """

    def __init__(
        self,
        processor: ItemProcessor,
        registry: Optional[RateLimiterRegistry] = None,
        config: Optional[QueueConfig] = None
    ):
        self.processor = processor
        self.registry = registry or RateLimiterRegistry()
        self.config = config or QueueConfig()

        # Live job registry in submission order
        self._jobs: Dict[str, Job] = {}
        self._queued: Deque[str] = deque()
        self._active: Dict[str, JobWorker] = {}
        self._lock = threading.RLock()

        self._reaper_task: Optional[asyncio.Task] = None
        self._closed = False

    def submit(
        self,
        owner_id: str,
        items: Sequence[Any],
        on_progress: Optional[Callable[[Dict[str, Any]], None]] = None
    ) -> str:
        """
        Queue a new bulk import job.

        Args:
            owner_id: Submitting user
            items: Items to process, in order
            on_progress: Optional callback receiving a job snapshot on every change

        Returns:
            Job ID

        Raises:
            InvalidInput: If owner_id is missing, items is empty or too large
        """
        # Workers run on the caller's loop
        asyncio.get_running_loop()

        if self._closed:
            raise RuntimeError("QueueManager is shut down")
        if not owner_id:
            raise InvalidInput("owner_id is required")

        items = list(items or [])
        if not items:
            raise InvalidInput("items cannot be empty")
        if len(items) > self.config.max_items_per_job:
            raise InvalidInput(
                f"Too many items: {len(items)} (maximum {self.config.max_items_per_job})"
            )

        job = Job.create(owner_id, items, on_progress=on_progress)
        with self._lock:
            self._jobs[job.id] = job
            self._queued.append(job.id)

        logger.info(f"Queued bulk import job {job.id} for owner {owner_id} with {len(items)} items")

        self._admit_next()
        return job.id

    def get_job(self, job_id: str) -> Job:
        """
        Get the live job record.

        Raises:
            NotFound: If the job is unknown or was evicted
        """
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise NotFound(job_id)
        return job

    def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Get a snapshot of a job, or None if not found"""
        with self._lock:
            job = self._jobs.get(job_id)
        return job.to_dict() if job else None

    def get_jobs_for_owner(self, owner_id: str) -> List[Dict[str, Any]]:
        """Get snapshots of an owner's jobs, newest first"""
        with self._lock:
            jobs = [job for job in self._jobs.values() if job.owner_id == owner_id]
        return [job.to_dict() for job in reversed(jobs)]

    def cancel(self, job_id: str) -> bool:
        """
        Cancel a job.

        A queued job is cancelled immediately and never starts. A processing job
        stops before its next item; the current item is allowed to finish. A
        job cancelled during its last item still ends as cancelled.

        Returns:
            True if cancelled or cancellation was requested, False if the job
            already finished

        Raises:
            NotFound: If the job is unknown or was evicted
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFound(job_id)

            if job.phase is JobPhase.QUEUED:
                job.cancel_queued()
                try:
                    self._queued.remove(job_id)
                except ValueError:
                    pass
                logger.info(f"Cancelled queued job {job_id}")
                return True

            worker = self._active.get(job_id)
            if job.phase is JobPhase.PROCESSING and worker is not None:
                worker.token.cancel()
                logger.info(f"Cancellation requested for job {job_id}")
                return True

        return False

    def get_queue_status(self) -> Dict[str, Any]:
        """Get global queue status"""
        with self._lock:
            queued_jobs = len(self._queued)
            processing_jobs = len(self._active)
            total_jobs = len(self._jobs)

        return {
            'queued_jobs': queued_jobs,
            'processing_jobs': processing_jobs,
            'max_concurrent_jobs': self.config.max_concurrent_jobs,
            'total_jobs': total_jobs,
            'rate_limit_status': self.registry.get_all_status()
        }

    def reap_expired(self, now: Optional[datetime] = None) -> int:
        """
        Evict jobs that finished more than `retention` seconds ago.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            Number of jobs evicted
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self.config.retention)

        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.is_terminal and job.completed_at is not None and job.completed_at <= cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]

        if expired:
            logger.info(f"Evicted {len(expired)} finished jobs")
        return len(expired)

    async def start(self) -> None:
        """Start the background reaper"""
        if self._reaper_task is None:
            self._reaper_task = asyncio.create_task(self._reap_loop(), name="job-reaper")

    async def wait_for(self, job_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Wait until a job reaches a terminal phase.

        Returns:
            Final job snapshot

        Raises:
            NotFound: If the job is unknown
            asyncio.TimeoutError: If the job is still running after timeout
        """
        job = self.get_job(job_id)

        async def _poll():
            while not job.is_terminal:
                await asyncio.sleep(self.config.poll_interval)

        await asyncio.wait_for(_poll(), timeout=timeout)
        return job.to_dict()

    async def join(self, timeout: Optional[float] = None) -> None:
        """Wait until no job is queued or processing"""
        async def _poll():
            while True:
                with self._lock:
                    idle = not self._queued and not self._active
                if idle:
                    return
                await asyncio.sleep(self.config.poll_interval)

        await asyncio.wait_for(_poll(), timeout=timeout)

    async def shutdown(self) -> None:
        """
        Stop the queue.

        Queued jobs are cancelled, running jobs are asked to stop at their next
        item and given shutdown_timeout seconds, then the rate limiters are shut
        down.
        """
        logger.info("Stopping job queue...")
        self._closed = True

        if self._reaper_task is not None:
            self._reaper_task.cancel()
            try:
                await self._reaper_task
            except asyncio.CancelledError:
                pass
            self._reaper_task = None

        with self._lock:
            queued = list(self._queued)
            self._queued.clear()
            workers = list(self._active.values())

        for job_id in queued:
            self._jobs[job_id].cancel_queued()

        for worker in workers:
            worker.token.cancel("Queue shutting down")

        tasks = [worker.task for worker in workers if worker.task is not None]
        if tasks:
            logger.info(f"Waiting for {len(tasks)} active jobs to stop...")
            done, pending = await asyncio.wait(tasks, timeout=self.config.shutdown_timeout)
            if pending:
                logger.warning("Shutdown timeout - cancelling jobs that did not stop")
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        await self.registry.shutdown()
        logger.info(f"Job queue stopped. Cancelled {len(queued)} queued jobs")

    def _admit_next(self) -> None:
        """Start workers for queued jobs, in submission order, while slots are free"""
        with self._lock:
            while self._queued and len(self._active) < self.config.max_concurrent_jobs:
                job_id = self._queued.popleft()
                job = self._jobs.get(job_id)
                if job is None or job.phase is not JobPhase.QUEUED:
                    continue

                worker = JobWorker(job, self.processor)
                self._active[job_id] = worker
                task = worker.start()
                task.add_done_callback(partial(self._on_worker_done, job_id))

    def _on_worker_done(self, job_id: str, task: asyncio.Task) -> None:
        with self._lock:
            worker = self._active.pop(job_id, None)

        job = worker.job if worker else self._jobs.get(job_id)
        if job is not None and not job.is_terminal:
            # Cancelled before the worker got to run
            job.finish(cancelled=True)

        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Worker for job {job_id} crashed: {task.exception()}")

        if not self._closed:
            self._admit_next()

    async def _reap_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.reap_interval)
            try:
                self.reap_expired()
            except Exception as e:
                logger.exception(f"Job reaper error: {e}")
