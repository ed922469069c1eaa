"""Repository for card CRUD operations."""

import copy
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from cardpipe.database.schema import CardRecord, init_database
from cardpipe.models.card import Card, MetadataStatus
from cardpipe.models.card_type import CardType
from cardpipe.models.processing import ProcessingStatus

# Card attribute -> record attribute, where they differ
_RECORD_ATTRIBUTES = {"metadata": "card_metadata"}

_UPDATABLE_FIELDS = frozenset(
    {
        "content",
        "type",
        "url",
        "file_id",
        "file_metadata",
        "thumbnail_id",
        "colors",
        "tags",
        "ai_tags",
        "ai_summary",
        "ai_transcript",
        "metadata",
        "metadata_status",
        "metadata_title",
        "metadata_description",
        "processing_status",
        "updated_at",
        "is_deleted",
        "is_favorited",
    }
)

CardUpdater = Callable[[Card], Optional[dict[str, Any]]]


class Repository:
    """Repository for managing cards in the database."""

    def __init__(self, database_url: str):
        """Initialize repository with database connection."""
        self.session_factory = init_database(database_url)

    def _get_session(self) -> Session:
        """Get a new database session."""
        return self.session_factory()

    # ==================== Card Operations ====================

    def add_card(self, card: Card) -> Card:
        """Add a new card to the database."""
        with self._get_session() as session:
            record = CardRecord(id=card.id, user_id=card.user_id, created_at=card.created_at)
            self._apply_changes(record, {name: getattr(card, name) for name in _UPDATABLE_FIELDS})
            session.add(record)
            session.commit()
            return self._record_to_card(record)

    def get_card(self, card_id: str) -> Optional[Card]:
        """Get a card by its ID."""
        with self._get_session() as session:
            record = session.get(CardRecord, card_id)
            if record:
                return self._record_to_card(record)
            return None

    def list_cards(
        self,
        include_deleted: bool = False,
        limit: Optional[int] = None,
    ) -> list[Card]:
        """List cards, optionally including soft-deleted ones."""
        with self._get_session() as session:
            stmt = select(CardRecord)
            if not include_deleted:
                stmt = stmt.where(CardRecord.is_deleted.is_(False))
            stmt = stmt.order_by(CardRecord.created_at.asc())
            if limit is not None:
                stmt = stmt.limit(limit)
            records = session.scalars(stmt).all()
            return [self._record_to_card(r) for r in records]

    def apply_card_update(self, card_id: str, updater: CardUpdater) -> Optional[Card]:
        """Read a card, compute changes, and write them back in one transaction.

        The updater receives the current card and returns a dict of field
        changes (or None for no write). Everything happens in one session and
        one transaction. The row is selected FOR UPDATE, which locks it on
        backends that support row locks; SQLite ignores the hint and relies
        on its database-level write lock, so two SQLite writers can both read
        before either commits.

        Args:
            card_id: ID of the card to update
            updater: Callable computing field changes from the current card

        Returns:
            The updated card, or None if the card does not exist
        """
        with self._get_session() as session:
            stmt = select(CardRecord).where(CardRecord.id == card_id).with_for_update()
            record = session.scalars(stmt).first()
            if record is None:
                return None

            changes = updater(self._record_to_card(record))
            if changes:
                changes = dict(changes)
                changes.setdefault("updated_at", datetime.utcnow())
                self._apply_changes(record, changes)
                session.commit()
            return self._record_to_card(record)

    def soft_delete_card(self, card_id: str) -> bool:
        """Flag a card as deleted. Returns False if the card does not exist."""
        updated = self.apply_card_update(card_id, lambda card: {"is_deleted": True})
        return updated is not None

    # ==================== Helper Methods ====================

    @staticmethod
    def _apply_changes(record: CardRecord, changes: dict[str, Any]) -> None:
        """Write card field changes onto a record."""
        for name, value in changes.items():
            if name not in _UPDATABLE_FIELDS:
                raise ValueError(f"Card field '{name}' cannot be updated")
            if isinstance(value, ProcessingStatus):
                value = value.to_dict()
            elif isinstance(value, Enum):
                value = value.value
            elif isinstance(value, (dict, list)):
                # JSON columns only track reassignment, never in-place mutation
                value = copy.deepcopy(value)
            setattr(record, _RECORD_ATTRIBUTES.get(name, name), value)

    @staticmethod
    def _record_to_card(record: CardRecord) -> Card:
        """Convert database record to Card model."""
        return Card(
            id=record.id,
            user_id=record.user_id,
            content=record.content or "",
            type=CardType(record.type),
            url=record.url,
            file_id=record.file_id,
            file_metadata=copy.deepcopy(record.file_metadata),
            thumbnail_id=record.thumbnail_id,
            colors=list(record.colors or []),
            tags=list(record.tags or []),
            ai_tags=list(record.ai_tags or []),
            ai_summary=record.ai_summary,
            ai_transcript=record.ai_transcript,
            metadata=copy.deepcopy(record.card_metadata or {}),
            metadata_status=(
                MetadataStatus(record.metadata_status) if record.metadata_status else None
            ),
            metadata_title=record.metadata_title,
            metadata_description=record.metadata_description,
            processing_status=ProcessingStatus.from_dict(copy.deepcopy(record.processing_status)),
            created_at=record.created_at,
            updated_at=record.updated_at,
            is_deleted=record.is_deleted,
            is_favorited=record.is_favorited,
        )
