"""
Bulk import service

Framework-agnostic handlers for the bulk import endpoints. Each handler
returns (http_status, payload) so any web layer can expose them:

    POST   submit          {ownerId, items[]}  -> 202 {jobId}
    GET    status?jobId=                       -> 200 {job} | 404
    GET    status?ownerId=                     -> 200 {jobs}
    GET    status                              -> 200 queue status
    DELETE ?jobId=                             -> 200 | 404
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tabqueue.exceptions import InvalidInput, NotFound
from tabqueue.jobs.queue import QueueManager
from tabqueue.pipeline.base import TabItem

logger = logging.getLogger(__name__)

Response = Tuple[int, Dict[str, Any]]


class SubmitRequest(BaseModel):
    """Body of a bulk import submission"""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    owner_id: str = Field(..., alias='ownerId', min_length=1)
    items: List[TabItem] = Field(..., min_length=1)


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = '.'.join(str(part) for part in detail.get('loc', ()))
        parts.append(f"{location}: {detail.get('msg')}" if location else detail.get('msg', ''))
    return '; '.join(parts)


class BulkImportService:
    """
    Request handlers on top of a QueueManager.

    Usage:
        service = BulkImportService(manager)
        status, payload = await service.submit({'ownerId': 'u1', 'items': [...]})
    """

    def __init__(self, manager: QueueManager):
        self.manager = manager

    async def submit(self, body: Any) -> Response:
        """Queue a new bulk import job"""
        if not isinstance(body, dict):
            return 400, {'error': 'Request body must be a JSON object'}

        try:
            request = SubmitRequest.model_validate(body)
        except ValidationError as e:
            return 400, {'error': f"Invalid request: {_format_validation_error(e)}"}

        try:
            job_id = self.manager.submit(request.owner_id, request.items)
        except InvalidInput as e:
            return 400, {'error': str(e)}

        return 202, {
            'queued': True,
            'jobId': job_id,
            'message': f"Queued bulk import job for {len(request.items)} tabs"
        }

    async def status(
        self,
        job_id: Optional[str] = None,
        owner_id: Optional[str] = None
    ) -> Response:
        """Job snapshot, an owner's jobs, or the global queue status"""
        if job_id:
            job = self.manager.get_job_status(job_id)
            if job is None:
                return 404, {'error': 'Job not found'}
            return 200, {'job': job}

        if owner_id:
            return 200, {'jobs': self.manager.get_jobs_for_owner(owner_id)}

        return 200, self.manager.get_queue_status()

    async def cancel(self, job_id: Optional[str]) -> Response:
        """Cancel a job"""
        if not job_id:
            return 400, {'error': 'Job ID is required'}

        try:
            cancelled = self.manager.cancel(job_id)
        except NotFound:
            cancelled = False

        if not cancelled:
            return 404, {'error': 'Job not found or cannot be cancelled'}

        return 200, {'message': f"Job {job_id} cancelled successfully"}
