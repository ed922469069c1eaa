"""Data models for Cardpipe."""

from cardpipe.models.card import Card, MetadataStatus
from cardpipe.models.card_type import CardType
from cardpipe.models.link_preview import LinkPreview, PreviewStatus
from cardpipe.models.processing import (
    ProcessingStatus,
    StageKey,
    StageState,
    StageStatus,
)

__all__ = [
    "Card",
    "CardType",
    "LinkPreview",
    "MetadataStatus",
    "PreviewStatus",
    "ProcessingStatus",
    "StageKey",
    "StageState",
    "StageStatus",
]
