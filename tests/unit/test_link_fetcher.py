"""Unit tests for LinkMetadataFetcher."""

import io
from unittest.mock import Mock, patch

import pytest
import requests
from PIL import Image

from cardpipe.exceptions import ScraperError
from cardpipe.models.card import MetadataStatus
from cardpipe.models.card_type import CardType
from cardpipe.services.link_fetcher import IMAGE_FETCH_TIMEOUT, LinkMetadataFetcher
from cardpipe.services.scraper_client import ScraperClient
from cardpipe.services.selectors import ScrapeAttribute, ScrapeResultItem, ScrapeSelectorResult


def meta(selector: str, value: str) -> ScrapeSelectorResult:
    """Helper to build a meta tag result."""
    return ScrapeSelectorResult(
        selector=selector,
        results=[ScrapeResultItem(attributes=[ScrapeAttribute(name="content", value=value)])],
    )


def png_bytes(width: int = 4, height: int = 3) -> bytes:
    """Helper to build a small PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color="red").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def scraper():
    """Create a mocked scraper client."""
    return Mock(spec=ScraperClient)


@pytest.fixture
def mock_requests():
    """Mock requests module used for OG image downloads."""
    with patch("cardpipe.services.link_fetcher.requests") as mock:
        mock.exceptions = requests.exceptions
        yield mock


@pytest.fixture
def fetcher(repository, storage, scraper):
    """Create a fetcher with a mocked scraper."""
    return LinkMetadataFetcher(repository, storage, scraper)


class TestFetchSuccess:
    """Tests for successful fetches."""

    def test_fetch_stores_preview_and_image(
        self, fetcher, scraper, mock_requests, repository, storage, make_card
    ):
        """Test a scrape is merged and the OG image stored."""
        card = make_card(type=CardType.LINK, url="example.com/post")
        scraper.scrape.return_value = [
            meta("meta[property='og:title']", "Hello"),
            meta("meta[property='og:image']", "/cover.png"),
        ]
        mock_requests.get.return_value.content = png_bytes(4, 3)

        result = fetcher.fetch(card.id)

        assert result.success
        assert result.normalized_url == "https://example.com/post"
        scraper.scrape.assert_called_once_with("https://example.com/post")
        mock_requests.get.assert_called_once_with(
            "https://example.com/cover.png", timeout=IMAGE_FETCH_TIMEOUT
        )

        stored = repository.get_card(card.id)
        preview = stored.link_preview
        assert stored.metadata_status == MetadataStatus.COMPLETED
        assert stored.metadata_title == "Hello"
        assert preview["status"] == "success"
        assert preview["image_width"] == 4
        assert preview["image_height"] == 3
        assert storage.exists(preview["image_storage_id"])

    def test_image_download_failure(self, fetcher, scraper, mock_requests, repository, make_card):
        """Test a failed image download still records the preview."""
        card = make_card(type=CardType.LINK, url="https://example.com/post")
        scraper.scrape.return_value = [meta("meta[property='og:image']", "/cover.png")]
        mock_requests.get.side_effect = requests.exceptions.ConnectionError("refused")

        result = fetcher.fetch(card.id)

        assert result.success
        preview = repository.get_card(card.id).link_preview
        assert preview["image_url"] == "https://example.com/cover.png"
        assert "image_storage_id" not in preview

    def test_unreadable_image(self, fetcher, scraper, mock_requests, repository, make_card):
        """Test bytes that are not an image are not stored."""
        card = make_card(type=CardType.LINK, url="https://example.com/post")
        scraper.scrape.return_value = [meta("meta[property='og:image']", "/cover.png")]
        mock_requests.get.return_value.content = b"<html>not an image</html>"

        result = fetcher.fetch(card.id)

        assert result.success
        assert "image_storage_id" not in repository.get_card(card.id).link_preview

    def test_no_image(self, fetcher, scraper, mock_requests, make_card):
        """Test pages without an image skip the download."""
        card = make_card(type=CardType.LINK, url="https://example.com/post")
        scraper.scrape.return_value = []

        assert fetcher.fetch(card.id).success
        mock_requests.get.assert_not_called()


class TestFetchFailure:
    """Tests for failed and skipped fetches."""

    def test_scraper_error(self, fetcher, scraper, repository, make_card):
        """Test scraper errors are recorded on the card."""
        card = make_card(type=CardType.LINK, url="https://example.com/post")
        scraper.scrape.side_effect = ScraperError("Timed out", error_type="timeout")

        result = fetcher.fetch(card.id)

        assert not result.success
        assert result.status == "failed"
        assert result.error_type == "timeout"
        stored = repository.get_card(card.id)
        assert stored.metadata_status == MetadataStatus.FAILED
        assert stored.link_preview["status"] == "error"
        assert stored.link_preview["error"] == {"type": "timeout", "message": "Timed out"}

    def test_card_without_url(self, fetcher, scraper, make_card):
        """Test cards without a URL are invalid."""
        card = make_card(content="no link here")

        result = fetcher.fetch(card.id)

        assert result.status == "failed"
        assert result.error_type == "invalid_card"
        assert result.error_message == "Card is missing a valid URL"
        scraper.scrape.assert_not_called()

    def test_missing_card(self, fetcher, scraper):
        """Test an unknown card is reported as invalid."""
        result = fetcher.fetch("missing")

        assert result.error_type == "invalid_card"
        scraper.scrape.assert_not_called()

    def test_awaiting_classification(self, fetcher, scraper, repository, make_card):
        """Test unclassified cards are skipped without a write."""
        card = make_card(content="Read later", url="https://example.com/post")

        result = fetcher.fetch(card.id)

        assert result.status == "skipped"
        assert result.error_type == "awaiting_classification"
        scraper.scrape.assert_not_called()
        assert repository.get_card(card.id).metadata == {}

    def test_classified_non_link(self, fetcher, scraper, make_card):
        """Test a card classified as something else is invalid."""
        card = make_card(
            type=CardType.IMAGE,
            content="Sunset",
            url="https://example.com/sunset.jpg",
            processing_status={"classify": {"status": "completed", "confidence": 0.9}},
        )

        result = fetcher.fetch(card.id)

        assert result.status == "failed"
        assert result.error_message == "Card is not a link"
        scraper.scrape.assert_not_called()
