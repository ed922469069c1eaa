"""Card model for Cardpipe."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from cardpipe.models.card_type import CardType
from cardpipe.models.processing import ProcessingStatus


class MetadataStatus(str, Enum):
    """Link preview fetch status (link cards only)."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Card:
    """A saved content item, the unit of classification and enrichment."""

    # Identity
    user_id: str
    content: str = ""
    type: CardType = CardType.TEXT
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    # Attachments
    url: Optional[str] = None
    file_id: Optional[str] = None
    file_metadata: Optional[dict[str, Any]] = None  # mime_type, width, height, duration
    thumbnail_id: Optional[str] = None
    colors: list[str] = field(default_factory=list)  # hex strings for palettes

    # Tags and AI output
    tags: list[str] = field(default_factory=list)
    ai_tags: list[str] = field(default_factory=list)
    ai_summary: Optional[str] = None
    ai_transcript: Optional[str] = None

    # Enrichment bag: link_preview, link_category, worker-specific keys
    metadata: dict[str, Any] = field(default_factory=dict)
    metadata_status: Optional[MetadataStatus] = None
    metadata_title: Optional[str] = None
    metadata_description: Optional[str] = None
    processing_status: ProcessingStatus = field(default_factory=ProcessingStatus)

    # Bookkeeping
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    is_deleted: bool = False
    is_favorited: bool = False

    def __post_init__(self) -> None:
        """Validate and convert fields after initialization."""
        if isinstance(self.type, str):
            self.type = CardType(self.type)
        if isinstance(self.metadata_status, str):
            self.metadata_status = MetadataStatus(self.metadata_status)
        if isinstance(self.processing_status, dict):
            self.processing_status = ProcessingStatus.from_dict(self.processing_status)

    @property
    def link_preview(self) -> dict[str, Any]:
        """Stored link preview, or an empty dict."""
        preview = self.metadata.get("link_preview") if self.metadata else None
        return preview if isinstance(preview, dict) else {}

    @property
    def has_ai_metadata(self) -> bool:
        return bool(self.ai_summary or self.ai_tags or self.ai_transcript)
