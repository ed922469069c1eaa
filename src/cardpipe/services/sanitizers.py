"""Sanitizers for scraped text and URLs.

Rejection never raises: every sanitizer returns None for input it will not
accept, and callers treat None as "field unavailable".
"""

import re
from typing import Optional
from urllib.parse import urljoin, urlsplit

_WHITESPACE_RE = re.compile(r"\s+")
_DATA_SCHEME_RE = re.compile(r"^data:", re.IGNORECASE)
_BLOCKED_SCHEME_RE = re.compile(r"^(javascript:|mailto:)", re.IGNORECASE)

ALLOWED_SCHEMES = ("http", "https")


def sanitize_text(value: Optional[str], max_length: int) -> Optional[str]:
    """Collapse whitespace, trim and truncate text.

    Args:
        value: Raw text (may be None)
        max_length: Maximum number of characters kept

    Returns:
        Cleaned text, or None for empty/whitespace-only input
    """
    if not value:
        return None
    normalized = _WHITESPACE_RE.sub(" ", value).strip()
    if not normalized:
        return None
    return normalized[:max_length]


def sanitize_url(
    base_url: str, value: Optional[str], allow_data: bool = False
) -> Optional[str]:
    """Resolve a possibly-relative URL and keep it only if it is safe.

    Args:
        base_url: Page URL used to resolve relative references
        value: Raw URL from the page
        allow_data: Accept data: URLs as-is

    Returns:
        Absolute http(s) URL (or data: URL when allowed), otherwise None
    """
    if not value:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    if _DATA_SCHEME_RE.match(trimmed):
        return trimmed if allow_data else None

    if _BLOCKED_SCHEME_RE.match(trimmed):
        return None

    try:
        resolved = urljoin(base_url, trimmed)
        parts = urlsplit(resolved)
        # Accessing port validates it
        parts.port
    except ValueError:
        return None

    if parts.scheme.lower() not in ALLOWED_SCHEMES or not parts.hostname:
        return None
    return resolved


def sanitize_image_url(base_url: str, value: Optional[str]) -> Optional[str]:
    """Sanitize an image URL; data: URLs of any MIME type are accepted."""
    if not value:
        return None
    return sanitize_url(base_url, value, allow_data=True)


def normalize_url(url: str) -> str:
    """Prefix https:// unless the URL already starts with http:// or https://."""
    trimmed = url.strip()
    if trimmed.startswith("http://") or trimmed.startswith("https://"):
        return trimmed
    return f"https://{trimmed}"
