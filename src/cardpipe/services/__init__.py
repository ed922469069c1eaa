"""Services for Cardpipe."""

from cardpipe.services.classification_commit import update_classification
from cardpipe.services.classifier import (
    CardSnapshot,
    ClassificationEngine,
    ClassificationResult,
    Decision,
    classify_snapshot,
)
from cardpipe.services.link_fetcher import FetchResult, LinkMetadataFetcher
from cardpipe.services.link_metadata import LinkMetadataService
from cardpipe.services.pipeline import CardPipeline, InlineScheduler, PipelineRun
from cardpipe.services.pipeline_admin import (
    BackfillSummary,
    PipelineAdmin,
    PipelineOverview,
    RefreshResult,
    ResetResult,
)
from cardpipe.services.scraper_client import ScraperClient
from cardpipe.services.stages import StageTracker

__all__ = [
    "BackfillSummary",
    "CardPipeline",
    "CardSnapshot",
    "ClassificationEngine",
    "ClassificationResult",
    "Decision",
    "FetchResult",
    "InlineScheduler",
    "LinkMetadataFetcher",
    "LinkMetadataService",
    "PipelineAdmin",
    "PipelineOverview",
    "PipelineRun",
    "RefreshResult",
    "ResetResult",
    "ScraperClient",
    "StageTracker",
    "classify_snapshot",
    "update_classification",
]
