"""
Tab processing pipeline

Provider interfaces, the rate-limited TabPipeline and dry-run providers.
"""

from .base import (
    ContentExtractor,
    Embedder,
    ExtractedContent,
    ScreenshotProvider,
    ScreenshotResult,
    Summarizer,
    SummaryResult,
    TabItem,
    TabResult,
    TabStore
)
from .tab_pipeline import (
    CONTENT_EXTRACTION,
    EMBEDDINGS,
    SCREENSHOTS,
    STAGES,
    SUMMARIZATION,
    TabPipeline
)
from .dry_run import (
    DryRunContentExtractor,
    DryRunEmbedder,
    DryRunScreenshotProvider,
    DryRunSummarizer,
    InMemoryTabStore
)

__all__ = [
    # Models
    'TabItem',
    'TabResult',
    'ScreenshotResult',
    'ExtractedContent',
    'SummaryResult',

    # Providers
    'ScreenshotProvider',
    'ContentExtractor',
    'Summarizer',
    'Embedder',
    'TabStore',

    # Pipeline
    'TabPipeline',
    'STAGES',
    'SCREENSHOTS',
    'CONTENT_EXTRACTION',
    'SUMMARIZATION',
    'EMBEDDINGS',

    # Dry run
    'DryRunScreenshotProvider',
    'DryRunContentExtractor',
    'DryRunSummarizer',
    'DryRunEmbedder',
    'InMemoryTabStore'
]
