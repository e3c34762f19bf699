"""
Dry-run providers

Stand-ins for the screenshot, AI and embedding services that return
deterministic fake results without any network access. Used by
`tabqueue run` and by tests.
"""

import asyncio
import hashlib
import random
import threading
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from tabqueue.exceptions import DownstreamError
from tabqueue.pipeline.base import (
    ContentExtractor,
    Embedder,
    ExtractedContent,
    ScreenshotProvider,
    ScreenshotResult,
    Summarizer,
    SummaryResult,
    TabResult,
    TabStore
)


class _DryRunProvider:
    """Shared latency and failure simulation"""

    def __init__(self, latency: float = 0.0, fail_rate: float = 0.0, seed: Optional[int] = None):
        if not 0.0 <= fail_rate <= 1.0:
            raise ValueError("fail_rate must be between 0 and 1")
        self.latency = latency
        self.fail_rate = fail_rate
        self._random = random.Random(seed)
        self.calls = 0

    async def _simulate(self, what: str) -> None:
        self.calls += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.fail_rate and self._random.random() < self.fail_rate:
            raise DownstreamError(f"Simulated {what} failure")


class DryRunScreenshotProvider(_DryRunProvider, ScreenshotProvider):

    async def capture(self, url: str) -> ScreenshotResult:
        await self._simulate('screenshot')
        key = _digest(url)[:16]
        return ScreenshotResult(
            thumbnail_url=f"dry-run://screenshots/{key}/thumbnail.png",
            screenshot_url=f"dry-run://screenshots/{key}/preview.png",
            full_screenshot_url=f"dry-run://screenshots/{key}/full.png"
        )


class DryRunContentExtractor(_DryRunProvider, ContentExtractor):

    async def extract(self, url: str) -> ExtractedContent:
        await self._simulate('content extraction')
        return ExtractedContent(content=f"Content of {url}", title=None)


class DryRunSummarizer(_DryRunProvider, Summarizer):

    async def summarize(self, url: str, content: str) -> SummaryResult:
        await self._simulate('summarization')
        text = content.strip() or url
        summary = text.split('. ')[0][:200]
        return SummaryResult(summary=summary, tags=['dry-run'], category='Uncategorized')


class DryRunEmbedder(_DryRunProvider, Embedder):

    def __init__(self, dimensions: int = 8, **kwargs):
        super().__init__(**kwargs)
        self.dimensions = dimensions

    async def embed(self, text: str) -> List[float]:
        await self._simulate('embedding')
        digest = hashlib.sha256(text.encode('utf-8')).digest()
        return [round(digest[i % len(digest)] / 255.0, 4) for i in range(self.dimensions)]


class InMemoryTabStore(TabStore):
    """Idempotent tab store keyed by (owner_id, url)"""

    def __init__(self):
        self.tabs: Dict[Tuple[str, str], Dict] = {}
        self._lock = threading.Lock()

    async def save(self, owner_id: str, job_id: str, result: TabResult) -> str:
        key = (owner_id, result.item.url)
        with self._lock:
            existing = self.tabs.get(key)
            tab_id = existing['id'] if existing else f"tab_{uuid4().hex}"
            self.tabs[key] = {
                'id': tab_id,
                'owner_id': owner_id,
                'url': result.item.url,
                'title': result.title,
                'summary': result.summary.summary if result.summary else None,
                'screenshot_url': result.screenshots.screenshot_url if result.screenshots else None,
                'embedding': result.embedding,
                'import_job_id': job_id
            }
        return tab_id


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode('utf-8')).hexdigest()
