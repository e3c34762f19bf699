"""
Tests for BulkImportService request handlers
"""

import asyncio

import pytest

from tabqueue.jobs.queue import QueueConfig, QueueManager
from tabqueue.jobs.registry import RateLimiterRegistry
from tabqueue.service import BulkImportService


class HeldProcessor:
    """Keeps every item waiting until the gate opens"""

    def __init__(self, gate):
        self.gate = gate

    async def process(self, item, context):
        await self.gate.wait()


def make_service(gate, max_concurrent_jobs=1):
    manager = QueueManager(
        HeldProcessor(gate),
        RateLimiterRegistry(),
        QueueConfig(max_concurrent_jobs=max_concurrent_jobs, poll_interval=0.01)
    )
    return BulkImportService(manager), manager


def body(*urls, owner='user_1'):
    return {'ownerId': owner, 'items': [{'url': url} for url in urls]}


class TestSubmit:
    """Tests for the submit handler"""

    @pytest.mark.asyncio
    async def test_submit_accepted(self):
        gate = asyncio.Event()
        service, manager = make_service(gate)

        status, payload = await service.submit(body('https://example.com/a', 'https://example.com/b'))

        assert status == 202
        assert payload['queued'] is True
        assert payload['jobId'].startswith('job_')
        assert '2 tabs' in payload['message']

        job = manager.get_job(payload['jobId'])
        assert [item.url for item in job.items] == ['https://example.com/a', 'https://example.com/b']

        gate.set()
        await manager.join(timeout=5)

    @pytest.mark.asyncio
    async def test_snake_case_owner_accepted(self):
        gate = asyncio.Event()
        gate.set()
        service, manager = make_service(gate)

        status, _ = await service.submit({'owner_id': 'user_1', 'items': [{'url': 'https://example.com'}]})

        assert status == 202
        await manager.join(timeout=5)

    @pytest.mark.asyncio
    @pytest.mark.parametrize('request_body', [
        None,
        ['https://example.com'],
        {'items': [{'url': 'https://example.com'}]},
        {'ownerId': 'user_1', 'items': []},
        {'ownerId': 'user_1'},
        {'ownerId': 'user_1', 'items': [{'url': 'not a url'}]},
        {'ownerId': 'user_1', 'items': [{'title': 'missing url'}]},
    ])
    async def test_submit_rejected(self, request_body):
        service, manager = make_service(asyncio.Event())

        status, payload = await service.submit(request_body)

        assert status == 400
        assert payload['error']
        assert manager.get_queue_status()['total_jobs'] == 0

    @pytest.mark.asyncio
    async def test_too_many_items_rejected(self):
        service, manager = make_service(asyncio.Event())
        manager.config.max_items_per_job = 1

        status, payload = await service.submit(body('https://example.com/a', 'https://example.com/b'))

        assert status == 400
        assert 'Too many items' in payload['error']


class TestStatus:
    """Tests for the status handler"""

    @pytest.mark.asyncio
    async def test_job_status(self):
        gate = asyncio.Event()
        service, manager = make_service(gate)
        _, submitted = await service.submit(body('https://example.com/a'))

        status, payload = await service.status(job_id=submitted['jobId'])

        assert status == 200
        assert payload['job']['id'] == submitted['jobId']
        assert payload['job']['phase'] == 'processing'

        gate.set()
        await manager.join(timeout=5)

    @pytest.mark.asyncio
    async def test_unknown_job(self):
        service, _ = make_service(asyncio.Event())

        status, payload = await service.status(job_id='job_missing')

        assert status == 404
        assert payload == {'error': 'Job not found'}

    @pytest.mark.asyncio
    async def test_owner_jobs(self):
        gate = asyncio.Event()
        gate.set()
        service, manager = make_service(gate)
        await service.submit(body('https://example.com/a'))
        await service.submit(body('https://example.com/b', owner='user_2'))
        await manager.join(timeout=5)

        status, payload = await service.status(owner_id='user_1')

        assert status == 200
        assert len(payload['jobs']) == 1
        assert payload['jobs'][0]['owner_id'] == 'user_1'

    @pytest.mark.asyncio
    async def test_queue_status(self):
        gate = asyncio.Event()
        service, manager = make_service(gate, max_concurrent_jobs=1)
        await service.submit(body('https://example.com/a'))
        await service.submit(body('https://example.com/b'))

        status, payload = await service.status()

        assert status == 200
        assert payload['processing_jobs'] == 1
        assert payload['queued_jobs'] == 1
        assert payload['rate_limit_status'] == {}

        gate.set()
        await manager.join(timeout=5)


class TestCancel:
    """Tests for the cancel handler"""

    @pytest.mark.asyncio
    async def test_cancel_queued_job(self):
        gate = asyncio.Event()
        service, manager = make_service(gate, max_concurrent_jobs=1)
        await service.submit(body('https://example.com/a'))
        _, queued = await service.submit(body('https://example.com/b'))

        status, payload = await service.cancel(queued['jobId'])

        assert status == 200
        assert payload['message'] == f"Job {queued['jobId']} cancelled successfully"
        assert manager.get_job_status(queued['jobId'])['phase'] == 'cancelled'

        gate.set()
        await manager.join(timeout=5)

    @pytest.mark.asyncio
    async def test_cancel_requires_id(self):
        service, _ = make_service(asyncio.Event())

        status, payload = await service.cancel(None)

        assert status == 400
        assert payload == {'error': 'Job ID is required'}

    @pytest.mark.asyncio
    async def test_cancel_unknown_job(self):
        service, _ = make_service(asyncio.Event())

        status, payload = await service.cancel('job_missing')

        assert status == 404
        assert payload == {'error': 'Job not found or cannot be cancelled'}

    @pytest.mark.asyncio
    async def test_cancel_finished_job(self):
        gate = asyncio.Event()
        gate.set()
        service, manager = make_service(gate)
        _, submitted = await service.submit(body('https://example.com/a'))
        await manager.wait_for(submitted['jobId'], timeout=5)

        status, _ = await service.cancel(submitted['jobId'])

        assert status == 404
