"""Unit tests for pipeline administration."""

from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest
from tenacity import wait_none

from cardpipe.config import Settings
from cardpipe.exceptions import CardNotFoundError
from cardpipe.models.card import MetadataStatus
from cardpipe.models.card_type import CardType
from cardpipe.models.processing import StageKey, StageState
from cardpipe.services.pipeline import CardPipeline, InlineScheduler
from cardpipe.services.pipeline_admin import (
    REASON_AI_METADATA_MISSING,
    REASON_LINK_METADATA_PENDING,
    PipelineAdmin,
)


@pytest.fixture
def scheduler():
    """Provide a mock scheduler."""
    return Mock()


@pytest.fixture
def admin(repository, storage, scheduler, settings):
    """Provide a pipeline admin."""
    return PipelineAdmin(repository, storage, scheduler, settings=settings)


class TestReset:
    """Tests for reset_card_processing_state."""

    def test_resets_card(self, admin, repository, storage, make_card):
        """Test AI output is wiped and classification restarts."""
        thumbnail_id = storage.store(b"thumb", "image/jpeg")
        card = make_card(
            content="notes",
            thumbnail_id=thumbnail_id,
            ai_tags=["work"],
            ai_summary="Summary",
            ai_transcript="Transcript",
            processing_status={
                "classify": {"status": "completed", "confidence": 0.7},
                "metadata": {"status": "completed"},
            },
        )

        result = admin.reset_card_processing_state(card.id)

        assert result.cleared_thumbnail
        stored = repository.get_card(card.id)
        assert stored.thumbnail_id is None
        assert stored.ai_tags == []
        assert stored.ai_summary is None
        assert stored.ai_transcript is None
        assert stored.processing_status.classify.status == StageState.PENDING
        assert stored.processing_status.metadata.status == StageState.COMPLETED
        assert not storage.exists(thumbnail_id)

    def test_without_thumbnail(self, admin, make_card):
        """Test nothing is cleared when there was no thumbnail."""
        card = make_card(content="notes")
        assert not admin.reset_card_processing_state(card.id).cleared_thumbnail

    def test_thumbnail_delete_failure(self, admin, repository, make_card):
        """Test a failed thumbnail delete still resets the card."""
        card = make_card(content="notes", thumbnail_id="ghost")

        result = admin.reset_card_processing_state(card.id)

        assert result.cleared_thumbnail
        assert repository.get_card(card.id).thumbnail_id is None

    def test_missing_card(self, admin):
        """Test resetting an unknown card raises."""
        with pytest.raises(CardNotFoundError):
            admin.reset_card_processing_state("missing")


class TestRefresh:
    """Tests for refresh_card_processing."""

    def test_refresh_schedules(self, admin, scheduler, repository, make_card):
        """Test a refresh resets and reschedules the card."""
        card = make_card(content="notes", ai_summary="Old")

        result = admin.refresh_card_processing(card.id)

        assert result.success
        assert result.reason is None
        scheduler.assert_called_once_with(card.id)
        assert repository.get_card(card.id).ai_summary is None

    def test_refresh_missing(self, admin, scheduler):
        """Test an unknown card is reported, not raised."""
        result = admin.refresh_card_processing("missing")

        assert not result.success
        assert result.reason == "not_found"
        scheduler.assert_not_called()

    def test_refresh_reprocesses_quote(self, repository, storage, settings, make_card):
        """Test a refreshed quote card is classified and enriched again."""
        card = make_card(content='"Carpe diem" - Horace')

        def write_summary(current):
            repository.apply_card_update(current.id, lambda c: {"ai_summary": "Seize the day"})
            return 0.9

        worker = Mock(side_effect=write_summary)
        pipeline = CardPipeline(
            repository, storage, workers={StageKey.METADATA: worker}, retry_wait=wait_none()
        )
        admin = PipelineAdmin(repository, storage, InlineScheduler(pipeline), settings=settings)
        pipeline.run(card.id)

        result = admin.refresh_card_processing(card.id)

        assert result.success
        assert worker.call_count == 2
        stored = repository.get_card(card.id)
        assert stored.type == CardType.QUOTE
        assert stored.content == "Carpe diem - Horace"
        assert stored.ai_summary == "Seize the day"
        assert stored.processing_status.classify.status == StageState.COMPLETED
        assert stored.processing_status.metadata.status == StageState.COMPLETED
        assert admin.find_cards_missing_ai() == []


class TestBackfill:
    """Tests for find_cards_missing_ai and retry_ai_backfill."""

    def test_find_missing(self, admin, make_card):
        """Test only active cards without summary and tags are returned."""
        missing = make_card(content="a")
        make_card(content="b", ai_summary="Summary")
        make_card(content="c", ai_tags=["tag"])
        make_card(content="d", is_deleted=True)

        assert [card.id for card in admin.find_cards_missing_ai()] == [missing.id]

    def test_find_missing_limit(self, admin, make_card):
        """Test the limit caps the result."""
        for index in range(3):
            make_card(content=f"card {index}")

        assert len(admin.find_cards_missing_ai(limit=2)) == 2

    def test_default_limit_from_settings(self, repository, storage, scheduler, temp_db_path, make_card):
        """Test the backfill limit setting is the default."""
        settings = Settings(database_path=temp_db_path, backfill_limit=1, _env_file=None)
        admin = PipelineAdmin(repository, storage, scheduler, settings=settings)
        make_card(content="a")
        make_card(content="b")

        assert len(admin.find_cards_missing_ai()) == 1

    def test_retry_records_failures(self, admin, scheduler, make_card):
        """Test one failing card does not stop the sweep."""
        first = make_card(content="a")
        second = make_card(content="b")

        def schedule(card_id):
            if card_id == first.id:
                raise RuntimeError("queue full")

        scheduler.side_effect = schedule

        summary = admin.retry_ai_backfill()

        assert scheduler.call_count == 2
        assert summary.enqueued_count == 1
        assert summary.failed_card_ids == [first.id]
        assert summary.pending_sample_count == 2
        assert second.id not in summary.failed_card_ids

    def test_retry_with_nothing_missing(self, admin, scheduler, make_card):
        """Test an empty sweep schedules nothing."""
        make_card(content="a", ai_summary="Summary")

        summary = admin.retry_ai_backfill()

        scheduler.assert_not_called()
        assert summary.enqueued_count == 0
        assert summary.pending_sample_count == 0


class TestOverview:
    """Tests for get_overview."""

    def test_counts(self, admin, make_card):
        """Test card, status and stage counts."""
        plain = make_card(content="a")
        link = make_card(
            type=CardType.LINK,
            url="https://example.com",
            metadata_status=MetadataStatus.PENDING,
            ai_summary="Summary",
            ai_tags=["web"],
            processing_status={
                "metadata": {"status": "failed", "error": "boom"},
                "categorize": {"status": "pending"},
            },
        )
        make_card(content="gone", user_id="user-2", is_deleted=True)
        make_card(
            type=CardType.IMAGE,
            ai_summary="Photo",
            ai_tags=["cat"],
            created_at=datetime.utcnow() - timedelta(days=10),
            processing_status={"renderables": {"status": "in_progress"}},
        )

        overview = admin.get_overview()

        assert overview.total_cards == 4
        assert overview.active_cards == 3
        assert overview.deleted_cards == 1
        assert overview.unique_users == 2
        assert overview.created_last_seven_days == 2
        assert overview.created_last_thirty_days == 3
        assert overview.cards_by_type == {"text": 2, "link": 1, "image": 1}
        assert overview.metadata_status == {"pending": 1, "completed": 0, "failed": 0, "unset": 2}
        assert overview.missing_ai_metadata == 1
        assert overview.pending_enrichment == 2
        assert overview.failed_cards == 1
        assert overview.stage_summaries[StageKey.METADATA].failed == 1
        assert overview.stage_summaries[StageKey.CATEGORIZE].pending == 1
        assert overview.stage_summaries[StageKey.RENDERABLES].in_progress == 1
        assert not overview.is_approximate

        missing = {summary.card_id: summary for summary in overview.missing_cards}
        assert set(missing) == {plain.id, link.id}
        assert REASON_AI_METADATA_MISSING in missing[plain.id].reasons
        assert missing[link.id].reasons == [REASON_LINK_METADATA_PENDING]

    def test_limits(self, repository, storage, scheduler, temp_db_path, make_card):
        """Test the scan and sample limits."""
        settings = Settings(
            database_path=temp_db_path,
            overview_scan_limit=2,
            missing_cards_sample_limit=1,
            _env_file=None,
        )
        admin = PipelineAdmin(repository, storage, scheduler, settings=settings)
        for index in range(3):
            make_card(content=f"card {index}")

        overview = admin.get_overview()

        assert overview.is_approximate
        assert overview.total_cards == 2
        assert len(overview.missing_cards) == 1

    def test_empty(self, admin):
        """Test an empty database."""
        overview = admin.get_overview()
        assert overview.total_cards == 0
        assert overview.missing_cards == []
