"""Stage transitions for downstream workers.

A stage acts as a simple lock: only a worker that observes ``pending`` may
claim it, and only a claimed (``in_progress``) stage may be completed or
failed. A worker that dies mid-flight leaves the stage ``in_progress``
until an administrative reset.
"""

import logging
from typing import Any, Optional

from cardpipe.database.repository import Repository
from cardpipe.exceptions import CardNotFoundError, StageTransitionError
from cardpipe.models.card import Card
from cardpipe.models.processing import (
    StageKey,
    StageState,
    now_millis,
    stage_completed,
    stage_failed,
    stage_in_progress,
)

logger = logging.getLogger(__name__)


class StageTracker:
    """Moves a card's stages through pending -> in_progress -> completed|failed."""

    def __init__(self, repository: Repository):
        self.repository = repository

    def claim(self, card_id: str, stage: StageKey) -> bool:
        """Claim a pending stage for this worker.

        Returns:
            True if the stage moved to in_progress, False if it was not pending

        Raises:
            CardNotFoundError: If the card does not exist
        """
        stage = StageKey(stage)
        claimed = False

        def updater(card: Card) -> Optional[dict[str, Any]]:
            nonlocal claimed
            current = card.processing_status.get(stage)
            if current is None or current.status != StageState.PENDING:
                claimed = False
                return None
            claimed = True
            return {
                "processing_status": card.processing_status.with_stages(
                    {stage: stage_in_progress(now_millis(), current)}
                )
            }

        if self.repository.apply_card_update(card_id, updater) is None:
            raise CardNotFoundError(card_id)

        if claimed:
            logger.info("Claimed %s stage for card %s", stage.value, card_id)
        return claimed

    def complete(
        self, card_id: str, stage: StageKey, confidence: Optional[float] = None
    ) -> Card:
        """Mark a claimed stage as completed."""
        stage = StageKey(stage)
        card = self._finish(
            card_id,
            stage,
            lambda now, current: stage_completed(
                now, confidence if confidence is not None else current.confidence
            ),
        )
        logger.info("Completed %s stage for card %s", stage.value, card_id)
        return card

    def fail(self, card_id: str, stage: StageKey, error: str) -> Card:
        """Mark a claimed stage as failed with an error message."""
        stage = StageKey(stage)
        card = self._finish(
            card_id, stage, lambda now, current: stage_failed(now, error, current)
        )
        logger.warning("Failed %s stage for card %s: %s", stage.value, card_id, error)
        return card

    def _finish(self, card_id: str, stage: StageKey, build) -> Card:
        def updater(card: Card) -> dict[str, Any]:
            current = card.processing_status.get(stage)
            if current is None or current.status != StageState.IN_PROGRESS:
                found = current.status.value if current else "missing"
                raise StageTransitionError(
                    f"Cannot finish {stage.value} stage of card {card_id}: stage is {found}"
                )
            return {
                "processing_status": card.processing_status.with_stages(
                    {stage: build(now_millis(), current)}
                )
            }

        updated = self.repository.apply_card_update(card_id, updater)
        if updated is None:
            raise CardNotFoundError(card_id)
        return updated
