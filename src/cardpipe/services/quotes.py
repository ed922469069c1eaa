"""Quote detection and normalization for text cards."""

import re
from dataclasses import dataclass
from typing import Optional

QUOTE_CHARS = ('"', "'")

# Text allowed after the closing quote: attribution or trailing punctuation
_ATTRIBUTION_PREFIXES = frozenset("—-–―~")
_PAREN_PREFIXES = frozenset("([{")
_TRAILING_PUNCT_ONLY_RE = re.compile(r"^[\s.,!?;:…·、。！？；：•]+$")


@dataclass
class QuoteNormalization:
    """Result of stripping surrounding quotes from content."""

    text: str
    removed_quotes: bool


def _is_allowed_trailing_text(text: str) -> bool:
    trimmed = text.lstrip()
    if not trimmed:
        return True
    first = trimmed[0]
    if first in _ATTRIBUTION_PREFIXES or first in _PAREN_PREFIXES:
        return True
    return bool(_TRAILING_PUNCT_ONLY_RE.match(trimmed))


def _find_closing_index(value: str, closing: str) -> int:
    """Index of the last closing quote followed only by allowed text, or -1."""
    for index in range(len(value) - 1, 0, -1):
        if value[index] != closing:
            continue
        if _is_allowed_trailing_text(value[index + 1 :]):
            return index
    return -1


def normalize_quote_content(content: Optional[str]) -> QuoteNormalization:
    """Strip one matching pair of straight quotes wrapping the content.

    An attribution suffix after the closing quote is kept, so
    ``'"Carpe diem" - Horace'`` becomes ``'Carpe diem - Horace'``. Content
    that is not wrapped is returned unchanged.

    Args:
        content: Card content (may be None)

    Returns:
        QuoteNormalization with the resulting text and whether quotes were removed
    """
    original = content or ""
    working = original.strip()
    if len(working) < 2 or working[0] not in QUOTE_CHARS:
        return QuoteNormalization(text=original, removed_quotes=False)

    closing_index = _find_closing_index(working, working[0])
    if closing_index == -1:
        return QuoteNormalization(text=original, removed_quotes=False)

    before = working[1:closing_index]
    after = working[closing_index + 1 :]
    return QuoteNormalization(text=f"{before}{after}".strip(), removed_quotes=True)


def is_quote_content(content: Optional[str]) -> bool:
    """Whether trimmed content is a quoted passage with optional attribution."""
    result = normalize_quote_content(content)
    return result.removed_quotes and bool(result.text)
