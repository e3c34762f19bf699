"""
Pipeline models and provider interfaces

Concrete providers (screenshot service, LLM, embedding API, database) live
outside the core; they implement these interfaces and carry their own
timeouts and failure behavior.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TabItem(BaseModel):
    """A single tab submitted for import"""
    model_config = ConfigDict(str_strip_whitespace=True, extra='allow')

    url: str = Field(..., min_length=1, max_length=2048)
    title: Optional[str] = Field(None, max_length=255)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ValueError(f"Invalid tab URL: {v}")
        return v


@dataclass
class ScreenshotResult:
    """Screenshot URLs for one tab"""
    thumbnail_url: Optional[str] = None
    screenshot_url: Optional[str] = None
    full_screenshot_url: Optional[str] = None


@dataclass
class ExtractedContent:
    """Page content fetched for one tab"""
    content: str
    title: Optional[str] = None


@dataclass
class SummaryResult:
    """AI summary for one tab"""
    summary: str
    tags: List[str] = field(default_factory=list)
    category: Optional[str] = None


@dataclass
class TabResult:
    """Everything the pipeline produced for one tab"""
    item: TabItem
    title: Optional[str] = None
    screenshots: Optional[ScreenshotResult] = None
    content: Optional[ExtractedContent] = None
    summary: Optional[SummaryResult] = None
    embedding: Optional[List[float]] = None
    skipped_stages: List[str] = field(default_factory=list)
    tab_id: Optional[str] = None


class ScreenshotProvider(ABC):
    """Captures page screenshots"""

    @abstractmethod
    async def capture(self, url: str) -> ScreenshotResult:
        pass


class ContentExtractor(ABC):
    """Fetches readable page content"""

    @abstractmethod
    async def extract(self, url: str) -> ExtractedContent:
        pass


class Summarizer(ABC):
    """Summarizes and tags page content"""

    @abstractmethod
    async def summarize(self, url: str, content: str) -> SummaryResult:
        pass


class Embedder(ABC):
    """Generates a search embedding"""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        pass


class TabStore(ABC):
    """Durable storage for processed tabs"""

    @abstractmethod
    async def save(self, owner_id: str, job_id: str, result: TabResult) -> str:
        """
        Store a processed tab.

        Must be idempotent: saving the same owner/url twice updates one record.

        Returns:
            Stored tab ID
        """
        pass
