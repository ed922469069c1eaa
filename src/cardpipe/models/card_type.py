"""Card type enumeration."""

from enum import Enum


class CardType(str, Enum):
    """Content type of a card."""

    TEXT = "text"
    LINK = "link"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    PALETTE = "palette"
    QUOTE = "quote"
