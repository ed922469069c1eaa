"""Merge freshly scraped link previews into stored cards."""

import logging
from typing import Any, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from cardpipe.database.repository import Repository
from cardpipe.database.storage import AssetStorage
from cardpipe.exceptions import CardpipeError
from cardpipe.models.card import Card, MetadataStatus
from cardpipe.models.card_type import CardType
from cardpipe.models.link_preview import LinkPreview

logger = logging.getLogger(__name__)

LINK_PREVIEW_KEY = "link_preview"
LINK_CATEGORY_KEY = "link_category"


def _merge_image_slot(
    previous: dict[str, Any], candidate: dict[str, Any], released: list[tuple[str, str]]
) -> None:
    stored_id = previous.get("image_storage_id")
    if not stored_id:
        return

    new_id = candidate.get("image_storage_id")
    if new_id and new_id != stored_id:
        released.append(("OG image", stored_id))
        return

    if not new_id:
        candidate["image_storage_id"] = stored_id
        if candidate.get("image_updated_at") is None:
            candidate["image_updated_at"] = previous.get("image_updated_at")

    # Same asset: an incomplete candidate must not wipe known dimensions
    for key in ("image_width", "image_height"):
        if candidate.get(key) is None and previous.get(key) is not None:
            candidate[key] = previous[key]


def _merge_screenshot_slot(
    previous: dict[str, Any], candidate: dict[str, Any], released: list[tuple[str, str]]
) -> None:
    stored_id = previous.get("screenshot_storage_id")
    if not stored_id:
        return

    new_id = candidate.get("screenshot_storage_id")
    if new_id and new_id != stored_id:
        released.append(("screenshot", stored_id))
        return

    if not new_id:
        candidate["screenshot_storage_id"] = stored_id
        if candidate.get("screenshot_updated_at") is None:
            candidate["screenshot_updated_at"] = previous.get("screenshot_updated_at")

    for key in ("screenshot_width", "screenshot_height"):
        if candidate.get(key) is None and previous.get(key) is not None:
            candidate[key] = previous[key]


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


class LinkMetadataService:
    """Writes link previews and screenshots onto cards.

    Asset slots (OG image and screenshot) hold one storage reference each.
    When a slot is replaced the previous asset is released after the card
    write; release failures are logged and never undo the write.
    """

    def __init__(self, repository: Repository, storage: AssetStorage):
        self.repository = repository
        self.storage = storage

    # ==================== Preview Merge ====================

    def update_card_metadata(
        self,
        card_id: str,
        link_preview: Optional[Union[LinkPreview, dict[str, Any]]],
        status: MetadataStatus,
    ) -> Optional[Card]:
        """Merge a scraped preview into a card.

        Args:
            card_id: ID of the card to update
            link_preview: Candidate preview (may be None)
            status: Terminal fetch status, completed or failed

        Returns:
            The updated card, or None if the card does not exist
        """
        status = MetadataStatus(status)
        if isinstance(link_preview, LinkPreview):
            candidate: Optional[dict[str, Any]] = link_preview.to_dict()
        elif link_preview is not None:
            candidate = _drop_none(dict(link_preview))
        else:
            candidate = None

        released: list[tuple[str, str]] = []

        def updater(card: Card) -> dict[str, Any]:
            released.clear()
            next_preview = dict(candidate) if candidate is not None else None
            previous = card.link_preview

            if next_preview is not None and previous:
                _merge_image_slot(previous, next_preview, released)
                _merge_screenshot_slot(previous, next_preview, released)

            existing_category = card.metadata.get(LINK_CATEGORY_KEY)
            if card.type == CardType.LINK:
                metadata: dict[str, Any] = {}
            else:
                metadata = dict(card.metadata)
            if next_preview is not None:
                metadata[LINK_PREVIEW_KEY] = _drop_none(next_preview)
            if existing_category:
                metadata[LINK_CATEGORY_KEY] = existing_category

            changes: dict[str, Any] = {
                "metadata": metadata,
                "metadata_title": next_preview.get("title") if next_preview else None,
                "metadata_description": (
                    next_preview.get("description") if next_preview else None
                ),
            }
            if card.type == CardType.LINK:
                changes["metadata_status"] = status
            return changes

        updated = self.repository.apply_card_update(card_id, updater)
        if updated is None:
            logger.error("Card %s not found for metadata update", card_id)
            return None

        for kind, storage_id in released:
            self._release_asset(storage_id, card_id, kind)

        logger.info("Updated link metadata for card %s (%s)", card_id, status.value)
        return updated

    # ==================== Screenshot ====================

    def update_card_screenshot(
        self,
        card_id: str,
        screenshot_storage_id: str,
        screenshot_updated_at: int,
        screenshot_width: Optional[int] = None,
        screenshot_height: Optional[int] = None,
    ) -> Optional[Card]:
        """Attach a page screenshot to a link card.

        Non-link and missing cards are left alone.

        Returns:
            The updated card, or None if nothing was written
        """
        released: list[str] = []

        def updater(card: Card) -> Optional[dict[str, Any]]:
            released.clear()
            if card.type != CardType.LINK:
                return None

            preview = dict(card.link_preview)
            previous_id = preview.get("screenshot_storage_id")
            if previous_id and previous_id != screenshot_storage_id:
                released.append(previous_id)

            preview["screenshot_storage_id"] = screenshot_storage_id
            preview["screenshot_updated_at"] = screenshot_updated_at
            if screenshot_width is not None:
                preview["screenshot_width"] = screenshot_width
            if screenshot_height is not None:
                preview["screenshot_height"] = screenshot_height

            metadata = dict(card.metadata)
            metadata[LINK_PREVIEW_KEY] = preview
            return {"metadata": metadata}

        updated = self.repository.apply_card_update(card_id, updater)
        if updated is None or updated.type != CardType.LINK:
            return None

        for storage_id in released:
            self._release_asset(storage_id, card_id, "screenshot")
        return updated

    # ==================== Helper Methods ====================

    def _release_asset(self, storage_id: str, card_id: str, kind: str) -> None:
        """Best-effort delete of a replaced asset."""
        try:
            self.storage.delete(storage_id)
        except (CardpipeError, SQLAlchemyError) as e:
            logger.error(
                "Failed to delete previous %s %s for card %s: %s", kind, storage_id, card_id, e
            )
