"""
Job Worker

Drains a single job's items through the item pipeline, in order, one item at
a time. Per-item failures are recorded on the job and never abort the batch.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Optional, Protocol

from tabqueue.jobs.context import CancellationToken, ItemContext
from tabqueue.jobs.models import Job, JobPhase

logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
    """Worker execution state"""
    STARTING = "starting"
    ITERATING_ITEMS = "iterating_items"
    FINALIZING = "finalizing"
    DONE = "done"


class ItemProcessor(Protocol):
    """Anything that can process one item, e.g. TabPipeline"""

    async def process(self, item: Any, context: ItemContext) -> Any:
        ...


class JobWorker:
    """
    Executes one job.

    The worker holds a non-owning reference to the job and changes it only
    through Job's update methods. The cancellation token is checked before
    each item and once more before finalizing, so a job whose cancellation
    was accepted always ends cancelled even if no items were left.

    Usage:
        worker = JobWorker(job, pipeline)
        task = worker.start()       # job is 'processing' once this returns
        phase = await task
    """

    def __init__(
        self,
        job: Job,
        processor: ItemProcessor,
        token: Optional[CancellationToken] = None
    ):
        self.job = job
        self.processor = processor
        self.token = token or CancellationToken()
        self.state: Optional[WorkerState] = None
        self.task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        """
        Mark the job as processing and schedule the worker on the running loop.

        Returns:
            Task resolving to the job's terminal phase
        """
        self._begin()
        self.task = asyncio.get_running_loop().create_task(
            self.run(), name=f"job-worker-{self.job.id}"
        )
        return self.task

    async def run(self) -> JobPhase:
        """Run the job to a terminal phase"""
        if self.state is None:
            self._begin()

        self.state = WorkerState.ITERATING_ITEMS
        cancelled = False
        crashed = False
        index = 0

        try:
            for index, item in enumerate(self.job.items):
                if self.token.cancelled:
                    cancelled = True
                    logger.info(
                        f"Job {self.job.id} cancelled before item {index} "
                        f"({self.token.reason})"
                    )
                    break
                await self._process_item(index, item)
            else:
                # Cancellation requested during the last item still counts
                cancelled = self.token.cancelled

        except asyncio.CancelledError:
            self._finalize(cancelled=True)
            raise

        except Exception as e:
            logger.exception(f"Worker for job {self.job.id} failed at item {index}: {e}")
            self.job.fail_remaining(index, f"Worker error: {e}")
            crashed = True

        return self._finalize(cancelled=cancelled, failed=crashed)

    async def _process_item(self, index: int, item: Any) -> None:
        context = ItemContext(
            job_id=self.job.id,
            owner_id=self.job.owner_id,
            item_index=index,
            token=self.token
        )

        try:
            await self.processor.process(item, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.warning(f"Item {index} of job {self.job.id} failed: {message}")
            self.job.record_failure(index, message)
        else:
            self.job.record_success()

    def _begin(self) -> None:
        self.state = WorkerState.STARTING
        self.job.mark_processing()
        logger.info(f"Starting job {self.job.id} ({self.job.total_count} items)")

    def _finalize(self, cancelled: bool, failed: bool = False) -> JobPhase:
        self.state = WorkerState.FINALIZING
        if self.job.is_terminal:
            phase = self.job.phase
        else:
            phase = self.job.finish(cancelled=cancelled, failed=failed)
        self.state = WorkerState.DONE

        logger.info(
            f"Job {self.job.id} finished as {phase.value}: "
            f"{self.job.processed_count} processed, {self.job.failed_count} failed"
        )
        return phase
