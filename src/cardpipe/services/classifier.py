"""Content-type classification for cards.

Classification runs an ordered chain of pure rules over an immutable
snapshot of the card; the first rule that answers wins. A URL-only override
is applied afterwards, then the result is committed together with the
downstream stage seeds.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

from cardpipe.database.repository import Repository
from cardpipe.exceptions import CardNotFoundError
from cardpipe.models.card import Card
from cardpipe.models.card_type import CardType
from cardpipe.models.link_preview import PreviewStatus
from cardpipe.models.processing import (
    StageKey,
    StageState,
    clamp_confidence,
    should_run_renderables_stage,
)
from cardpipe.services.classification_commit import update_classification
from cardpipe.services.colors import MAX_PALETTE_COLORS, extract_palette_colors
from cardpipe.services.quotes import is_quote_content

logger = logging.getLogger(__name__)

# Confidence levels
STRONG_CONFIDENCE = 0.97
MEDIUM_CONFIDENCE = 0.9
PALETTE_CONFIDENCE = 0.88
QUOTE_CONFIDENCE = 0.95
DEFAULT_CONFIDENCE = 0.7
URL_ONLY_CONFIDENCE = 1.0

DOCUMENT_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.ms-excel",
        "application/rtf",
        "text/markdown",
        "text/csv",
    }
)

EXTENSION_TYPES: dict[str, CardType] = {
    **dict.fromkeys(
        ("png", "jpg", "jpeg", "webp", "gif", "bmp", "svg", "tiff", "avif", "heic"),
        CardType.IMAGE,
    ),
    **dict.fromkeys(
        ("mp4", "mov", "m4v", "webm", "mkv", "avi", "mpeg", "mpg", "wmv"),
        CardType.VIDEO,
    ),
    **dict.fromkeys(
        ("mp3", "wav", "flac", "m4a", "aac", "ogg", "oga", "opus"),
        CardType.AUDIO,
    ),
    **dict.fromkeys(
        ("pdf", "doc", "docx", "ppt", "pptx", "xls", "xlsx", "csv", "rtf", "md", "txt",
         "pages", "key", "numbers"),
        CardType.DOCUMENT,
    ),
}


@dataclass(frozen=True)
class CardSnapshot:
    """The card fields classification depends on."""

    content: str = ""
    url: Optional[str] = None
    file_id: Optional[str] = None
    mime_type: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None
    duration: Optional[float] = None
    tags: tuple[str, ...] = ()

    @classmethod
    def from_card(cls, card: Card) -> "CardSnapshot":
        file_metadata = card.file_metadata or {}
        return cls(
            content=card.content or "",
            url=card.url or None,
            file_id=card.file_id or None,
            mime_type=file_metadata.get("mime_type") or None,
            width=file_metadata.get("width"),
            height=file_metadata.get("height"),
            duration=file_metadata.get("duration"),
            tags=tuple(card.tags or ()),
        )

    @property
    def has_attachment(self) -> bool:
        return bool(self.url or self.file_id)

    @property
    def has_dimensions(self) -> bool:
        return bool(self.width and self.height)

    @property
    def palette_text(self) -> str:
        return "\n".join([self.content, *self.tags])


@dataclass(frozen=True)
class Decision:
    """A classification outcome, tagged with the rule that produced it."""

    type: CardType
    confidence: float
    rule: str


@dataclass(frozen=True)
class Rule:
    """A named classification rule; evaluate returns None to pass."""

    name: str
    evaluate: Callable[[CardSnapshot], Optional[Decision]]


def _by_mime_type(snapshot: CardSnapshot) -> Optional[Decision]:
    if not snapshot.mime_type:
        return None
    mime_type = snapshot.mime_type.strip().lower()
    if mime_type.startswith("image/"):
        card_type = CardType.IMAGE
    elif mime_type.startswith("video/"):
        card_type = CardType.VIDEO
    elif mime_type.startswith("audio/"):
        card_type = CardType.AUDIO
    elif mime_type in DOCUMENT_MIME_TYPES:
        card_type = CardType.DOCUMENT
    elif mime_type.startswith("text/"):
        return Decision(CardType.TEXT, MEDIUM_CONFIDENCE, "mime_type")
    else:
        return None
    return Decision(card_type, STRONG_CONFIDENCE, "mime_type")


def _by_file_dimensions(snapshot: CardSnapshot) -> Optional[Decision]:
    if snapshot.duration:
        card_type = CardType.VIDEO if snapshot.has_dimensions else CardType.AUDIO
    elif snapshot.has_dimensions:
        card_type = CardType.IMAGE
    else:
        return None
    return Decision(card_type, MEDIUM_CONFIDENCE, "file_dimensions")


def url_extension(url: Optional[str]) -> Optional[str]:
    """Lower-cased file extension of a URL path, if any."""
    if not url:
        return None
    try:
        path = urlsplit(url.strip()).path
    except ValueError:
        return None
    last_segment = path.rsplit("/", 1)[-1]
    if "." not in last_segment:
        return None
    return last_segment.rsplit(".", 1)[-1].lower() or None


def _by_url_extension(snapshot: CardSnapshot) -> Optional[Decision]:
    card_type = EXTENSION_TYPES.get(url_extension(snapshot.url) or "")
    if card_type is None:
        return None
    return Decision(card_type, MEDIUM_CONFIDENCE, "url_extension")


def _by_file_reference(snapshot: CardSnapshot) -> Optional[Decision]:
    if not snapshot.file_id:
        return None
    return Decision(CardType.DOCUMENT, MEDIUM_CONFIDENCE, "file_reference")


def _by_url_fallback(snapshot: CardSnapshot) -> Optional[Decision]:
    if not snapshot.url:
        return None
    return Decision(CardType.LINK, MEDIUM_CONFIDENCE, "url_fallback")


def _by_palette(snapshot: CardSnapshot) -> Optional[Decision]:
    if snapshot.has_attachment or not extract_palette_colors(snapshot.palette_text):
        return None
    return Decision(CardType.PALETTE, PALETTE_CONFIDENCE, "palette")


def _by_quote(snapshot: CardSnapshot) -> Optional[Decision]:
    if snapshot.has_attachment or not is_quote_content(snapshot.content):
        return None
    return Decision(CardType.QUOTE, QUOTE_CONFIDENCE, "quote")


def _default_text(snapshot: CardSnapshot) -> Optional[Decision]:
    return Decision(CardType.TEXT, DEFAULT_CONFIDENCE, "default_text")


RULES: tuple[Rule, ...] = (
    Rule("mime_type", _by_mime_type),
    Rule("file_dimensions", _by_file_dimensions),
    Rule("url_extension", _by_url_extension),
    Rule("file_reference", _by_file_reference),
    Rule("url_fallback", _by_url_fallback),
    Rule("quote", _by_quote),
    Rule("palette", _by_palette),
    Rule("default_text", _default_text),
)


def is_url_only(snapshot: CardSnapshot) -> bool:
    """A URL with no file and no content beyond the URL itself."""
    if not snapshot.url or snapshot.file_id:
        return False
    content = snapshot.content.strip()
    return not content or content == snapshot.url.strip()


def classify_snapshot(snapshot: CardSnapshot) -> Decision:
    """Run the rule chain and the URL-only override on a snapshot."""
    decision = Decision(CardType.TEXT, DEFAULT_CONFIDENCE, "default_text")
    for rule in RULES:
        result = rule.evaluate(snapshot)
        if result is not None:
            decision = result
            break

    if is_url_only(snapshot):
        decision = Decision(CardType.LINK, URL_ONLY_CONFIDENCE, "url_only")
    return Decision(decision.type, clamp_confidence(decision.confidence), decision.rule)


@dataclass
class ClassificationResult:
    """Classified type plus the downstream work it implies."""

    type: CardType
    confidence: float
    should_categorize: bool
    should_generate_metadata: bool
    should_generate_renderables: bool
    needs_link_metadata: bool

    @classmethod
    def for_card(cls, card: Card, card_type: CardType, confidence: float) -> "ClassificationResult":
        is_link = card_type == CardType.LINK
        preview_ok = card.link_preview.get("status") == PreviewStatus.SUCCESS.value
        return cls(
            type=card_type,
            confidence=confidence,
            should_categorize=is_link,
            should_generate_metadata=True,
            should_generate_renderables=should_run_renderables_stage(card_type),
            needs_link_metadata=is_link and not preview_ok,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": self.confidence,
            "should_categorize": self.should_categorize,
            "should_generate_metadata": self.should_generate_metadata,
            "should_generate_renderables": self.should_generate_renderables,
            "needs_link_metadata": self.needs_link_metadata,
        }


class ClassificationEngine:
    """Classifies cards and commits the result."""

    def __init__(self, repository: Repository):
        self.repository = repository

    def classify(self, card_id: str) -> ClassificationResult:
        """Classify a card and seed its processing stages.

        Args:
            card_id: ID of the card to classify

        Returns:
            ClassificationResult with the final type, confidence and flags

        Raises:
            CardNotFoundError: If the card does not exist
        """
        logger.info("Classifying card %s", card_id)
        card = self.repository.get_card(card_id)
        if card is None:
            logger.warning("Card %s not found for classification", card_id)
            raise CardNotFoundError(card_id, f"Card {card_id} not found for classification")

        if card.type == CardType.QUOTE and not card.url and not card.file_id:
            stored = card.processing_status.get(StageKey.CLASSIFY)
            confidence = (
                stored.confidence
                if stored is not None and stored.confidence is not None
                else QUOTE_CONFIDENCE
            )
            if stored is None or stored.status != StageState.COMPLETED:
                # Reset or never classified: re-seed the downstream stages
                logger.info("Card %s is a quote awaiting classification, recommitting", card_id)
                updated = update_classification(
                    self.repository, card_id, CardType.QUOTE, confidence
                )
                return ClassificationResult.for_card(updated, CardType.QUOTE, confidence)

            logger.info("Card %s is already a quote, keeping it", card_id)
            return ClassificationResult(
                type=CardType.QUOTE,
                confidence=confidence,
                should_categorize=False,
                should_generate_metadata=False,
                should_generate_renderables=False,
                needs_link_metadata=False,
            )

        snapshot = CardSnapshot.from_card(card)
        decision = classify_snapshot(snapshot)
        logger.info(
            "Card %s classified as %s (%.2f) by rule %s",
            card_id,
            decision.type.value,
            decision.confidence,
            decision.rule,
        )

        updated = update_classification(
            self.repository, card_id, decision.type, decision.confidence
        )
        if decision.type == CardType.PALETTE:
            self._update_palette_colors(updated, snapshot)

        return ClassificationResult.for_card(updated, decision.type, decision.confidence)

    def _update_palette_colors(self, card: Card, snapshot: CardSnapshot) -> None:
        colors = extract_palette_colors(snapshot.palette_text, MAX_PALETTE_COLORS)
        if not colors or colors == card.colors:
            return
        self.repository.apply_card_update(card.id, lambda current: {"colors": colors})
        logger.info("Updated palette colors for card %s (%d colors)", card.id, len(colors))
