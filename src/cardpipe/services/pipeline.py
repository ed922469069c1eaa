"""Run the enrichment pipeline for a card."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from tenacity import Retrying, stop_after_attempt, wait_exponential

from cardpipe.database.repository import Repository
from cardpipe.database.storage import AssetStorage
from cardpipe.exceptions import CardNotFoundError
from cardpipe.models.card import Card
from cardpipe.models.processing import StageKey, StageState
from cardpipe.services.classifier import ClassificationEngine, ClassificationResult
from cardpipe.services.link_fetcher import FetchResult, LinkMetadataFetcher
from cardpipe.services.scraper_client import ScraperClient
from cardpipe.services.stages import StageTracker

logger = logging.getLogger(__name__)

# A worker returns an optional confidence for the stage it completed
Worker = Callable[[Card], Optional[float]]

DOWNSTREAM_STAGES = (StageKey.CATEGORIZE, StageKey.METADATA, StageKey.RENDERABLES)


@dataclass
class PipelineRun:
    """What one pipeline run did to a card."""

    card_id: str
    classification: ClassificationResult
    link_metadata: Optional[FetchResult] = None
    completed_stages: list[StageKey] = field(default_factory=list)
    failed_stages: dict[StageKey, str] = field(default_factory=dict)


class CardPipeline:
    """Classifies a card, fetches link metadata and runs registered workers.

    Stages without a registered worker stay pending for external workers.
    """

    def __init__(
        self,
        repository: Repository,
        storage: AssetStorage,
        scraper: Optional[ScraperClient] = None,
        workers: Optional[dict[StageKey, Worker]] = None,
        max_attempts: int = 3,
        retry_wait=None,
    ):
        """Initialize the pipeline.

        Args:
            repository: Card repository
            storage: Asset storage
            scraper: Scraper client; link metadata is not fetched without one
            workers: Stage workers keyed by stage
            max_attempts: Attempts per worker before the stage is marked failed
            retry_wait: tenacity wait strategy between worker attempts
        """
        self.repository = repository
        self.engine = ClassificationEngine(repository)
        self.tracker = StageTracker(repository)
        self.fetcher = LinkMetadataFetcher(repository, storage, scraper) if scraper else None
        self.workers: dict[StageKey, Worker] = {}
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)
        for stage, worker in (workers or {}).items():
            self.register_worker(stage, worker)

    def register_worker(self, stage: StageKey, worker: Worker) -> None:
        """Register the worker that handles a downstream stage."""
        stage = StageKey(stage)
        if stage not in DOWNSTREAM_STAGES:
            raise ValueError(f"No worker can be registered for the {stage.value} stage")
        self.workers[stage] = worker

    def run(self, card_id: str) -> PipelineRun:
        """Run the full pipeline for one card.

        Raises:
            CardNotFoundError: If the card does not exist
        """
        classification = self.engine.classify(card_id)
        run = PipelineRun(card_id=card_id, classification=classification)

        if classification.needs_link_metadata and self.fetcher is not None:
            run.link_metadata = self.fetcher.fetch(card_id)

        for stage in DOWNSTREAM_STAGES:
            worker = self.workers.get(stage)
            if worker is None:
                continue
            if not self.tracker.claim(card_id, stage):
                continue
            error = self._run_stage(card_id, stage, worker)
            if error is None:
                run.completed_stages.append(stage)
            else:
                run.failed_stages[stage] = error

        return run

    def _run_stage(self, card_id: str, stage: StageKey, worker: Worker) -> Optional[str]:
        """Run a claimed stage and record its outcome.

        Returns:
            None on success, otherwise the error message
        """
        card = self.repository.get_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            reraise=True,
        )
        try:
            confidence = retrying(worker, card)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error("Worker for %s stage failed on card %s: %s", stage.value, card_id, message)
            self.tracker.fail(card_id, stage, message)
            return message

        self.tracker.complete(card_id, stage, confidence)
        return None

    def pending_stages(self, card_id: str) -> list[StageKey]:
        """Downstream stages currently pending for a card."""
        card = self.repository.get_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)
        pending = []
        for stage in DOWNSTREAM_STAGES:
            status = card.processing_status.get(stage)
            if status is not None and status.status == StageState.PENDING:
                pending.append(stage)
        return pending


class InlineScheduler:
    """Scheduler that runs the pipeline immediately in the calling thread."""

    def __init__(self, pipeline: CardPipeline):
        self.pipeline = pipeline

    def __call__(self, card_id: str) -> PipelineRun:
        logger.info("Running pipeline for card %s", card_id)
        return self.pipeline.run(card_id)
