"""Fetch link previews for link cards and merge them into storage."""

import io
import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests  # type: ignore[import-untyped]
from PIL import Image, UnidentifiedImageError

from cardpipe.database.repository import Repository
from cardpipe.database.storage import AssetStorage
from cardpipe.exceptions import ScraperError
from cardpipe.models.card import MetadataStatus
from cardpipe.models.card_type import CardType
from cardpipe.models.link_preview import LinkPreview
from cardpipe.models.processing import StageKey, StageState, now_millis
from cardpipe.services.link_metadata import LinkMetadataService
from cardpipe.services.link_preview import (
    build_error_preview,
    build_success_preview,
    parse_link_preview,
)
from cardpipe.services.sanitizers import normalize_url
from cardpipe.services.scraper_client import ScraperClient

logger = logging.getLogger(__name__)

IMAGE_FETCH_TIMEOUT = 15


@dataclass
class FetchResult:
    """Outcome of a link metadata fetch."""

    status: str  # success, failed or skipped
    normalized_url: Optional[str] = None
    link_preview: Optional[LinkPreview] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == "success"


class LinkMetadataFetcher:
    """Scrapes a link card's page and records the preview on the card."""

    def __init__(
        self,
        repository: Repository,
        storage: AssetStorage,
        scraper: ScraperClient,
        metadata_service: Optional[LinkMetadataService] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.scraper = scraper
        self.metadata_service = metadata_service or LinkMetadataService(repository, storage)

    def fetch(self, card_id: str) -> FetchResult:
        """Fetch and store the link preview for a card.

        Cards without a URL and cards classified as something other than a
        link get an ``invalid_card`` error preview. Cards still waiting for
        classification are skipped without a write.

        Args:
            card_id: ID of the card

        Returns:
            FetchResult describing what was written
        """
        card = self.repository.get_card(card_id)
        if card is None or not card.url:
            url = card.url if card else None
            return self._fail(card_id, url or "", "invalid_card", "Card is missing a valid URL")

        if card.type != CardType.LINK:
            classify = card.processing_status.get(StageKey.CLASSIFY)
            if classify is None or classify.status in (StageState.PENDING, StageState.IN_PROGRESS):
                logger.info("Card %s is waiting for classification, skipping fetch", card_id)
                return FetchResult(
                    status="skipped",
                    normalized_url=card.url,
                    error_type="awaiting_classification",
                    error_message="Waiting for classification to finish",
                )
            return self._fail(card_id, card.url, "invalid_card", "Card is not a link")

        normalized_url = normalize_url(card.url)
        try:
            results = self.scraper.scrape(normalized_url)
        except ScraperError as e:
            logger.error("Error extracting metadata for card %s: %s", card_id, e)
            return self._fail(card_id, normalized_url, e.error_type, str(e))

        parsed = parse_link_preview(normalized_url, results)
        stored_image = self._store_preview_image(parsed.image_url) if parsed.image_url else {}
        preview = build_success_preview(normalized_url, parsed, **stored_image)

        self.metadata_service.update_card_metadata(card_id, preview, MetadataStatus.COMPLETED)
        logger.info("Fetched link preview for card %s from %s", card_id, normalized_url)
        return FetchResult(status="success", normalized_url=normalized_url, link_preview=preview)

    def _fail(self, card_id: str, url: str, error_type: str, message: str) -> FetchResult:
        preview = build_error_preview(url, error_type, message)
        self.metadata_service.update_card_metadata(card_id, preview, MetadataStatus.FAILED)
        return FetchResult(
            status="failed",
            normalized_url=url or None,
            link_preview=preview,
            error_type=error_type,
            error_message=message,
        )

    def _store_preview_image(self, image_url: str) -> dict[str, Any]:
        """Download the OG image and store it; empty dict when unavailable."""
        if not image_url.startswith(("http://", "https://")):
            return {}

        try:
            response = requests.get(image_url, timeout=IMAGE_FETCH_TIMEOUT)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.warning("OG image fetch failed for %s: %s", image_url, e)
            return {}

        data = response.content
        try:
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
                content_type = Image.MIME.get(img.format or "")
        except (UnidentifiedImageError, OSError) as e:
            logger.warning("OG image skipped, unreadable image at %s: %s", image_url, e)
            return {}

        content_type = content_type or response.headers.get("content-type")
        storage_id = self.storage.store(data, content_type=content_type)
        return {
            "image_storage_id": storage_id,
            "image_updated_at": now_millis(),
            "image_width": width,
            "image_height": height,
        }
