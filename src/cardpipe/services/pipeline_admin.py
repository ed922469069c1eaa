"""Administrative reset, retry and overview for the enrichment pipeline."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from cardpipe.config import Settings, get_settings
from cardpipe.database.repository import Repository
from cardpipe.database.storage import AssetStorage
from cardpipe.exceptions import CardNotFoundError, CardpipeError
from cardpipe.models.card import Card, MetadataStatus
from cardpipe.models.card_type import CardType
from cardpipe.models.processing import StageKey, StageState, now_millis, stage_pending

logger = logging.getLogger(__name__)

# Starts the full pipeline for a card
Scheduler = Callable[[str], Any]

REASON_AI_METADATA_MISSING = "AI metadata missing"
REASON_AI_SUMMARY_MISSING = "AI summary missing"
REASON_AI_TAGS_MISSING = "AI tags missing"
REASON_LINK_METADATA_PENDING = "Link metadata still pending"


@dataclass
class ResetResult:
    cleared_thumbnail: bool


@dataclass
class RefreshResult:
    requested_at: int
    success: bool
    reason: Optional[str] = None


@dataclass
class BackfillSummary:
    """Outcome of an AI backfill sweep."""

    requested_at: int
    enqueued_count: int
    pending_sample_count: int
    failed_card_ids: list[str] = field(default_factory=list)


@dataclass
class StageSummary:
    pending: int = 0
    in_progress: int = 0
    failed: int = 0


@dataclass
class MissingCardSummary:
    """An active card that still lacks some enrichment."""

    card_id: str
    type: CardType
    created_at: datetime
    metadata_status: Optional[MetadataStatus]
    processing_status: dict[str, Any]
    reasons: list[str]


@dataclass
class PipelineOverview:
    """Aggregate pipeline health across all cards."""

    generated_at: int
    total_cards: int = 0
    active_cards: int = 0
    deleted_cards: int = 0
    unique_users: int = 0
    created_last_seven_days: int = 0
    created_last_thirty_days: int = 0
    cards_by_type: dict[str, int] = field(default_factory=dict)
    metadata_status: dict[str, int] = field(
        default_factory=lambda: {"pending": 0, "completed": 0, "failed": 0, "unset": 0}
    )
    missing_ai_metadata: int = 0
    pending_enrichment: int = 0
    failed_cards: int = 0
    stage_summaries: dict[StageKey, StageSummary] = field(
        default_factory=lambda: {stage: StageSummary() for stage in StageKey}
    )
    missing_cards: list[MissingCardSummary] = field(default_factory=list)
    is_approximate: bool = False


def missing_reasons(card: Card) -> list[str]:
    """Human-readable reasons a card still needs enrichment."""
    reasons = []
    if not card.has_ai_metadata:
        reasons.append(REASON_AI_METADATA_MISSING)
    if not card.ai_summary:
        reasons.append(REASON_AI_SUMMARY_MISSING)
    if not card.ai_tags:
        reasons.append(REASON_AI_TAGS_MISSING)
    if card.type == CardType.LINK and card.metadata_status == MetadataStatus.PENDING:
        reasons.append(REASON_LINK_METADATA_PENDING)
    return reasons


class PipelineAdmin:
    """Reset, retry and inspect card processing.

    The reset is the only path by which a completed stage goes back to
    pending; it restarts the pipeline at classification.
    """

    def __init__(
        self,
        repository: Repository,
        storage: AssetStorage,
        scheduler: Scheduler,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.scheduler = scheduler
        self.settings = settings or get_settings()

    # ==================== Reset / Retry ====================

    def reset_card_processing_state(self, card_id: str) -> ResetResult:
        """Return a card to classify-pending and wipe its AI output.

        The thumbnail is released best-effort; a failed delete is logged and
        still counts as cleared.

        Raises:
            CardNotFoundError: If the card does not exist
        """
        thumbnail_ids: list[str] = []

        def updater(card: Card) -> dict[str, Any]:
            thumbnail_ids[:] = [card.thumbnail_id] if card.thumbnail_id else []
            return {
                "thumbnail_id": None,
                "ai_tags": [],
                "ai_summary": None,
                "ai_transcript": None,
                "processing_status": card.processing_status.with_stages(
                    {StageKey.CLASSIFY: stage_pending()}
                ),
            }

        if self.repository.apply_card_update(card_id, updater) is None:
            raise CardNotFoundError(card_id)

        for thumbnail_id in thumbnail_ids:
            try:
                self.storage.delete(thumbnail_id)
            except (CardpipeError, SQLAlchemyError) as e:
                logger.error(
                    "Failed to delete thumbnail %s during refresh of card %s: %s",
                    thumbnail_id,
                    card_id,
                    e,
                )

        logger.info("Reset processing state for card %s", card_id)
        return ResetResult(cleared_thumbnail=bool(thumbnail_ids))

    def refresh_card_processing(self, card_id: str) -> RefreshResult:
        """Reset one card and schedule its pipeline again."""
        if self.repository.get_card(card_id) is None:
            return RefreshResult(requested_at=now_millis(), success=False, reason="not_found")

        self.reset_card_processing_state(card_id)
        self.scheduler(card_id)
        return RefreshResult(requested_at=now_millis(), success=True)

    def find_cards_missing_ai(self, limit: Optional[int] = None) -> list[Card]:
        """Active cards with neither an AI summary nor AI tags."""
        limit = limit if limit is not None else self.settings.backfill_limit
        missing = []
        for card in self.repository.list_cards(limit=self.settings.overview_scan_limit):
            if not card.ai_summary and not card.ai_tags:
                missing.append(card)
                if len(missing) >= limit:
                    break
        return missing

    def retry_ai_backfill(self) -> BackfillSummary:
        """Reset and reschedule every card missing AI output.

        Failures are recorded per card and never abort the sweep.
        """
        requested_at = now_millis()
        candidates = self.find_cards_missing_ai()
        failed_card_ids: list[str] = []

        for card in candidates:
            try:
                self.reset_card_processing_state(card.id)
                self.scheduler(card.id)
            except Exception as e:
                failed_card_ids.append(card.id)
                logger.error("Failed to start pipeline for card %s: %s", card.id, e)

        enqueued_count = len(candidates) - len(failed_card_ids)
        if enqueued_count:
            logger.info("Enqueued %d cards for AI backfill", enqueued_count)

        return BackfillSummary(
            requested_at=requested_at,
            enqueued_count=enqueued_count,
            pending_sample_count=len(self.find_cards_missing_ai()),
            failed_card_ids=failed_card_ids,
        )

    # ==================== Overview ====================

    def get_overview(self) -> PipelineOverview:
        """Summarize card counts and pipeline health.

        At most ``overview_scan_limit`` cards are scanned; ``is_approximate``
        is set when the limit is reached.
        """
        scan_limit = self.settings.overview_scan_limit
        sample_limit = self.settings.missing_cards_sample_limit
        cards = self.repository.list_cards(include_deleted=True, limit=scan_limit)

        now = datetime.utcnow()
        seven_days_ago = now - timedelta(days=7)
        thirty_days_ago = now - timedelta(days=30)

        overview = PipelineOverview(
            generated_at=now_millis(), is_approximate=len(cards) >= scan_limit
        )
        users = set()

        for card in cards:
            active = not card.is_deleted
            overview.total_cards += 1
            if active:
                overview.active_cards += 1
            else:
                overview.deleted_cards += 1
            users.add(card.user_id)

            if active and card.created_at >= seven_days_ago:
                overview.created_last_seven_days += 1
            if active and card.created_at >= thirty_days_ago:
                overview.created_last_thirty_days += 1

            type_key = card.type.value
            overview.cards_by_type[type_key] = overview.cards_by_type.get(type_key, 0) + 1

            if active:
                status_key = card.metadata_status.value if card.metadata_status else "unset"
                overview.metadata_status[status_key] += 1
                if not card.has_ai_metadata:
                    overview.missing_ai_metadata += 1

            reasons = missing_reasons(card)
            if active and reasons and len(overview.missing_cards) < sample_limit:
                overview.missing_cards.append(
                    MissingCardSummary(
                        card_id=card.id,
                        type=card.type,
                        created_at=card.created_at,
                        metadata_status=card.metadata_status,
                        processing_status=card.processing_status.to_dict(),
                        reasons=reasons,
                    )
                )

            has_failure = False
            has_pending = False
            for stage in StageKey:
                status = card.processing_status.get(stage)
                if status is None:
                    continue
                summary = overview.stage_summaries[stage]
                if status.status == StageState.FAILED:
                    summary.failed += 1
                    has_failure = True
                elif status.status == StageState.PENDING:
                    summary.pending += 1
                    has_pending = True
                elif status.status == StageState.IN_PROGRESS:
                    summary.in_progress += 1
                    has_pending = True

            if active and has_failure:
                overview.failed_cards += 1
            if active and has_pending:
                overview.pending_enrichment += 1

        overview.unique_users = len(users)
        return overview
