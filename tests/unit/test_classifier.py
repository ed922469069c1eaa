"""Unit tests for card classification."""

from datetime import datetime
from unittest.mock import patch

import pytest

from cardpipe.exceptions import CardNotFoundError
from cardpipe.models.card import MetadataStatus
from cardpipe.models.card_type import CardType
from cardpipe.models.processing import StageKey, StageState
from cardpipe.services.classification_commit import update_classification
from cardpipe.services.classifier import (
    CardSnapshot,
    ClassificationEngine,
    classify_snapshot,
    is_url_only,
    url_extension,
)


class TestRuleChain:
    """Tests for classify_snapshot."""

    def test_image_mime_type(self):
        """Test image MIME types are a strong signal."""
        decision = classify_snapshot(CardSnapshot(file_id="f1", mime_type="image/png"))
        assert decision.type == CardType.IMAGE
        assert decision.confidence == 0.97
        assert decision.rule == "mime_type"

    def test_document_mime_type(self):
        """Test known document MIME types."""
        decision = classify_snapshot(CardSnapshot(file_id="f1", mime_type="application/pdf"))
        assert decision.type == CardType.DOCUMENT
        assert decision.confidence == 0.97

    def test_text_mime_type(self):
        """Test other text/* MIME types give text at medium confidence."""
        decision = classify_snapshot(CardSnapshot(file_id="f1", mime_type="text/plain"))
        assert decision.type == CardType.TEXT
        assert decision.confidence == 0.9

    def test_mime_type_wins_over_extension(self):
        """Test the MIME type is checked before the URL extension."""
        snapshot = CardSnapshot(
            content="clip", url="https://example.com/clip.mp4", file_id="f1", mime_type="audio/mpeg"
        )
        assert classify_snapshot(snapshot).type == CardType.AUDIO

    def test_unknown_mime_falls_through(self):
        """Test an unknown MIME type falls back to the file reference."""
        decision = classify_snapshot(CardSnapshot(file_id="f1", mime_type="application/zip"))
        assert decision.type == CardType.DOCUMENT
        assert decision.rule == "file_reference"

    def test_dimensions(self):
        """Test width, height and duration decide the media type."""
        assert classify_snapshot(CardSnapshot(file_id="f", width=10, height=20)).type == CardType.IMAGE
        assert (
            classify_snapshot(CardSnapshot(file_id="f", width=10, height=20, duration=3)).type
            == CardType.VIDEO
        )
        assert classify_snapshot(CardSnapshot(file_id="f", duration=3)).type == CardType.AUDIO

    def test_url_extension_with_caption(self):
        """Test a media URL with a caption uses the extension."""
        decision = classify_snapshot(
            CardSnapshot(content="Nice photo", url="https://example.com/cat.JPG")
        )
        assert decision.type == CardType.IMAGE
        assert decision.confidence == 0.9
        assert decision.rule == "url_extension"

    def test_url_only_image_is_link(self):
        """Test a bare image URL is a link."""
        decision = classify_snapshot(CardSnapshot(url="https://example.com/cat.png"))
        assert decision.type == CardType.LINK
        assert decision.confidence == 1.0
        assert decision.rule == "url_only"

    def test_content_equal_to_url_is_link(self):
        """Test content repeating the URL counts as URL-only."""
        url = "https://example.com/article"
        decision = classify_snapshot(CardSnapshot(content=f"  {url} ", url=url))
        assert decision.type == CardType.LINK
        assert decision.confidence == 1.0

    def test_url_fallback(self):
        """Test other URLs with content are links at medium confidence."""
        decision = classify_snapshot(
            CardSnapshot(content="Read later", url="https://example.com/article")
        )
        assert decision.type == CardType.LINK
        assert decision.confidence == 0.9
        assert decision.rule == "url_fallback"

    def test_palette_content(self):
        """Test hex lists are palettes."""
        decision = classify_snapshot(CardSnapshot(content="#FF5733, #33FF57, #3357FF"))
        assert decision.type == CardType.PALETTE
        assert decision.confidence == 0.88

    def test_palette_from_color_names(self):
        """Test CSS color names make a palette."""
        assert classify_snapshot(CardSnapshot(content="red green blue")).type == CardType.PALETTE

    def test_palette_from_tags(self):
        """Test colors in tags count too."""
        snapshot = CardSnapshot(content="Brand", tags=("#000000", "#FFFFFF"))
        assert classify_snapshot(snapshot).type == CardType.PALETTE

    def test_palette_words_are_text(self):
        """Test talking about palettes is not a palette."""
        decision = classify_snapshot(CardSnapshot(content="My brand colors palette"))
        assert decision.type == CardType.TEXT
        assert decision.confidence == 0.7

    def test_palette_needs_no_attachment(self):
        """Test colors in a card with a URL do not make a palette."""
        snapshot = CardSnapshot(content="#FF0000", url="https://example.com/page")
        assert classify_snapshot(snapshot).type == CardType.LINK

    def test_quote(self):
        """Test quoted passages with attribution."""
        decision = classify_snapshot(CardSnapshot(content='"Carpe diem" - Horace'))
        assert decision.type == CardType.QUOTE
        assert decision.confidence == 0.95

    def test_quote_with_color_word(self):
        """Test colour words inside a quoted passage do not make a palette."""
        decision = classify_snapshot(
            CardSnapshot(content='"All that glitters is not gold" - Shakespeare')
        )
        assert decision.type == CardType.QUOTE
        assert decision.rule == "quote"

    def test_blockquote_is_text(self):
        """Test markdown blockquotes stay text."""
        decision = classify_snapshot(CardSnapshot(content="> To be or not to be"))
        assert decision.type == CardType.TEXT
        assert decision.rule == "default_text"

    def test_empty_card(self):
        """Test an empty card is text."""
        assert classify_snapshot(CardSnapshot()).type == CardType.TEXT


class TestUrlHelpers:
    """Tests for url_extension and is_url_only."""

    def test_url_extension(self):
        """Test extensions come from the last path segment."""
        assert url_extension("https://example.com/file.PDF?download=1") == "pdf"
        assert url_extension("https://example.com/v1.2/page") is None
        assert url_extension("https://example.com/") is None
        assert url_extension(None) is None

    def test_url_only_requires_no_file(self):
        """Test a file reference rules out URL-only."""
        assert not is_url_only(CardSnapshot(url="https://example.com", file_id="f1"))
        assert is_url_only(CardSnapshot(url="https://example.com", content="   "))
        assert not is_url_only(CardSnapshot(content="hello"))


class TestClassificationEngine:
    """Tests for ClassificationEngine."""

    def test_text_card(self, repository, make_card):
        """Test a text card is committed with its stage seeds."""
        card = make_card(content="Remember to water the plants")

        result = ClassificationEngine(repository).classify(card.id)

        assert result.type == CardType.TEXT
        assert result.confidence == 0.7
        assert not result.should_categorize
        assert result.should_generate_metadata
        assert not result.should_generate_renderables
        assert not result.needs_link_metadata

        stored = repository.get_card(card.id)
        status = stored.processing_status
        assert stored.type == CardType.TEXT
        assert status.classify.status == StageState.COMPLETED
        assert status.classify.confidence == 0.7
        assert status.categorize.status == StageState.COMPLETED
        assert status.categorize.confidence == 1.0
        assert status.metadata.status == StageState.PENDING
        assert status.renderables.status == StageState.COMPLETED
        assert stored.metadata_status is None

    def test_link_card(self, repository, make_card):
        """Test a link card needs categorization and metadata."""
        card = make_card(url="https://example.com/article")

        result = ClassificationEngine(repository).classify(card.id)

        assert result.type == CardType.LINK
        assert result.confidence == 1.0
        assert result.should_categorize
        assert result.needs_link_metadata

        stored = repository.get_card(card.id)
        assert stored.metadata_status == MetadataStatus.PENDING
        assert stored.processing_status.categorize.status == StageState.PENDING

    def test_link_with_successful_preview(self, repository, make_card):
        """Test a stored successful preview is not fetched again."""
        card = make_card(
            url="https://example.com/article",
            metadata={"link_preview": {"status": "success", "url": "https://example.com/article"}},
        )

        result = ClassificationEngine(repository).classify(card.id)

        assert result.type == CardType.LINK
        assert not result.needs_link_metadata

    def test_image_card_needs_renderables(self, repository, make_card):
        """Test media cards get a pending renderables stage."""
        card = make_card(file_id="file-1", file_metadata={"mime_type": "image/jpeg"})

        result = ClassificationEngine(repository).classify(card.id)

        assert result.type == CardType.IMAGE
        assert result.should_generate_renderables
        stored = repository.get_card(card.id)
        assert stored.processing_status.renderables.status == StageState.PENDING

    def test_quote_is_normalized(self, repository, make_card):
        """Test classifying a quote strips its quotes and keeps attribution."""
        card = make_card(content='"Carpe diem" - Horace')

        result = ClassificationEngine(repository).classify(card.id)

        assert result.type == CardType.QUOTE
        assert result.confidence == 0.95
        stored = repository.get_card(card.id)
        assert stored.type == CardType.QUOTE
        assert stored.content == "Carpe diem - Horace"
        assert stored.processing_status.renderables.status == StageState.COMPLETED

    def test_quote_is_sticky(self, repository, make_card):
        """Test a stored quote card is kept without a new write."""
        card = make_card(
            content="Carpe diem - Horace",
            type=CardType.QUOTE,
            processing_status={"classify": {"status": "completed", "confidence": 0.8}},
        )
        engine = ClassificationEngine(repository)

        with patch.object(repository, "apply_card_update") as mock_update:
            result = engine.classify(card.id)

        mock_update.assert_not_called()
        assert result.type == CardType.QUOTE
        assert result.confidence == 0.8
        assert not result.should_generate_metadata
        assert not result.needs_link_metadata

    def test_unclassified_quote_is_committed(self, repository, make_card):
        """Test a quote with no completed classify stage is committed as a quote."""
        card = make_card(content="Plain words", type=CardType.QUOTE)

        result = ClassificationEngine(repository).classify(card.id)

        assert result.type == CardType.QUOTE
        assert result.confidence == 0.95
        assert result.should_generate_metadata
        status = repository.get_card(card.id).processing_status
        assert status.classify.status == StageState.COMPLETED
        assert status.metadata.status == StageState.PENDING

    def test_reset_quote_keeps_stored_confidence(self, repository, make_card):
        """Test a quote reset to pending is recommitted with its stored confidence."""
        card = make_card(
            content="Carpe diem - Horace",
            type=CardType.QUOTE,
            processing_status={
                "classify": {"status": "pending", "confidence": 0.8},
                "metadata": {"status": "completed"},
            },
        )

        result = ClassificationEngine(repository).classify(card.id)

        assert result.type == CardType.QUOTE
        assert result.confidence == 0.8
        stored = repository.get_card(card.id)
        assert stored.content == "Carpe diem - Horace"
        assert stored.processing_status.classify.status == StageState.COMPLETED
        assert stored.processing_status.metadata.status == StageState.PENDING

    def test_quote_with_url_is_reclassified(self, repository, make_card):
        """Test the quote short-circuit needs a card without attachments."""
        card = make_card(content="Read later", type=CardType.QUOTE, url="https://example.com/a")
        assert ClassificationEngine(repository).classify(card.id).type == CardType.LINK

    def test_palette_stores_colors(self, repository, make_card):
        """Test palette colors are written to the card."""
        card = make_card(content="#ff5733 #33ff57", tags=["navy"])

        result = ClassificationEngine(repository).classify(card.id)

        assert result.type == CardType.PALETTE
        assert repository.get_card(card.id).colors == ["#FF5733", "#33FF57", "#000080"]

    def test_idempotent(self, repository, make_card):
        """Test classifying twice gives the same answer."""
        card = make_card(content="Meeting notes", url="https://example.com/doc.pdf")
        engine = ClassificationEngine(repository)

        first = engine.classify(card.id)
        second = engine.classify(card.id)

        assert first.to_dict() == second.to_dict()
        assert repository.get_card(card.id).type == CardType.DOCUMENT

    def test_not_found(self, repository):
        """Test classifying an unknown card raises."""
        with pytest.raises(CardNotFoundError, match="Card missing not found for classification"):
            ClassificationEngine(repository).classify("missing")


class TestUpdateClassification:
    """Tests for update_classification."""

    def test_single_timestamp(self, repository, make_card):
        """Test every stage and the card share the commit time."""
        card = make_card(content="hello")

        updated = update_classification(repository, card.id, CardType.TEXT, 0.7, now=1_700_000_000_000)

        status = updated.processing_status
        for stage in StageKey:
            assert status.get(stage).updated_at == 1_700_000_000_000
        assert updated.updated_at == datetime.utcfromtimestamp(1_700_000_000)

    def test_keeps_unknown_stages_and_metadata(self, repository, make_card):
        """Test unrelated stored data survives the commit."""
        card = make_card(
            content="hello",
            metadata={"source": "import"},
            processing_status={"transcribe": {"status": "completed"}},
        )

        updated = update_classification(repository, card.id, CardType.TEXT, 0.7)

        assert updated.metadata == {"source": "import"}
        assert updated.processing_status.to_dict()["transcribe"] == {"status": "completed"}

    def test_clamps_confidence(self, repository, make_card):
        """Test confidence is clamped into [0, 1]."""
        card = make_card(content="hello")

        updated = update_classification(repository, card.id, CardType.TEXT, 1.7)

        assert updated.processing_status.classify.confidence == 1.0

    def test_quote_content_untouched_when_unquoted(self, repository, make_card):
        """Test quote content without wrapping quotes is left alone."""
        card = make_card(content="  Already clean  ")

        updated = update_classification(repository, card.id, CardType.QUOTE, 0.95)

        assert updated.content == "  Already clean  "

    def test_missing_card(self, repository):
        """Test a vanished card raises."""
        with pytest.raises(CardNotFoundError):
            update_classification(repository, "missing", CardType.TEXT, 0.7)
