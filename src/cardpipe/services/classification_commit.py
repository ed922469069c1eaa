"""Atomic write of a classification result and its stage seeds."""

import logging
from datetime import datetime
from typing import Any, Optional

from cardpipe.database.repository import Repository
from cardpipe.exceptions import CardNotFoundError
from cardpipe.models.card import Card, MetadataStatus
from cardpipe.models.card_type import CardType
from cardpipe.models.processing import (
    StageKey,
    clamp_confidence,
    now_millis,
    should_run_categorize_stage,
    should_run_renderables_stage,
    stage_completed,
    stage_pending,
)
from cardpipe.services.quotes import normalize_quote_content

logger = logging.getLogger(__name__)


def update_classification(
    repository: Repository,
    card_id: str,
    card_type: CardType,
    confidence: float,
    now: Optional[int] = None,
) -> Card:
    """Commit a card type and seed the downstream stage statuses.

    Stages not touched here keep their stored entries. Every field written
    in one commit shares a single timestamp.

    Args:
        repository: Card repository
        card_id: ID of the card to update
        card_type: Final classified type
        confidence: Classification confidence (clamped to [0, 1])
        now: Commit time in epoch ms (defaults to the current time)

    Returns:
        The updated card

    Raises:
        CardNotFoundError: If the card no longer exists
    """
    card_type = CardType(card_type)
    timestamp = now if now is not None else now_millis()
    confidence = clamp_confidence(confidence)

    def updater(card: Card) -> dict[str, Any]:
        processing_status = card.processing_status.with_stages(
            {
                StageKey.CLASSIFY: stage_completed(timestamp, confidence),
                StageKey.CATEGORIZE: (
                    stage_pending(timestamp)
                    if should_run_categorize_stage(card_type)
                    else stage_completed(timestamp, 1.0)
                ),
                StageKey.METADATA: stage_pending(timestamp),
                StageKey.RENDERABLES: (
                    stage_pending(timestamp)
                    if should_run_renderables_stage(card_type)
                    else stage_completed(timestamp)
                ),
            }
        )

        changes: dict[str, Any] = {
            "type": card_type,
            "processing_status": processing_status,
            "updated_at": datetime.utcfromtimestamp(timestamp / 1000),
        }

        if card_type == CardType.LINK:
            changes["metadata_status"] = MetadataStatus.PENDING

        if card_type == CardType.QUOTE:
            normalized = normalize_quote_content(card.content)
            if normalized.removed_quotes and normalized.text != card.content:
                changes["content"] = normalized.text

        return changes

    updated = repository.apply_card_update(card_id, updater)
    if updated is None:
        raise CardNotFoundError(card_id)

    logger.info(
        "Committed classification for card %s: %s (%.2f)",
        card_id,
        card_type.value,
        confidence,
    )
    return updated
