"""Selector resolution for raw scrape results.

A scrape returns, per CSS selector, the list of matched elements with their
text, html and attributes. These helpers index that output and resolve a
logical field (title, description, image...) from an ordered list of
fallback selectors.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

TEXT_ATTRIBUTE = "text"


@dataclass
class ScrapeAttribute:
    """One attribute of a matched element."""

    name: Optional[str] = None
    value: Optional[str] = None


@dataclass
class ScrapeResultItem:
    """One element matched by a selector."""

    text: Optional[str] = None
    html: Optional[str] = None
    attributes: list[ScrapeAttribute] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScrapeResultItem":
        return cls(
            text=data.get("text"),
            html=data.get("html"),
            attributes=[
                ScrapeAttribute(name=attr.get("name"), value=attr.get("value"))
                for attr in data.get("attributes") or []
            ],
        )


@dataclass
class ScrapeSelectorResult:
    """All elements matched by one selector."""

    selector: str
    results: list[ScrapeResultItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScrapeSelectorResult":
        return cls(
            selector=data["selector"],
            results=[ScrapeResultItem.from_dict(item) for item in data.get("results") or []],
        )


@dataclass(frozen=True)
class SelectorSource:
    """A selector plus the attribute to read ("text" for element text)."""

    selector: str
    attribute: str


SelectorMap = dict[str, list[ScrapeResultItem]]


def to_selector_map(results: Optional[list[ScrapeSelectorResult]]) -> SelectorMap:
    """Index scrape results by selector."""
    selector_map: SelectorMap = {}
    if not results:
        return selector_map
    for entry in results:
        selector_map[entry.selector] = list(entry.results or [])
    return selector_map


def find_attribute_value(item: Optional[ScrapeResultItem], attribute: str) -> Optional[str]:
    """Case-insensitive attribute lookup; None for missing or blank values."""
    if item is None or not item.attributes:
        return None
    needle = attribute.lower()
    for attr in item.attributes:
        if attr.name and attr.name.lower() == needle:
            value = (attr.value or "").strip()
            return value or None
    return None


def _item_text(item: ScrapeResultItem) -> Optional[str]:
    text = (item.text or "").strip() or (item.html or "").strip()
    return text or None


def get_selector_value(selector_map: SelectorMap, source: SelectorSource) -> Optional[str]:
    """Read a single value for a selector source.

    For the text attribute this is the first non-empty text among the
    matched elements; for other attributes it is the value from the first
    element that carries it.
    """
    for item in selector_map.get(source.selector, []):
        if source.attribute == TEXT_ATTRIBUTE:
            value = _item_text(item)
        else:
            value = find_attribute_value(item, source.attribute)
        if value:
            return value
    return None


def first_from_sources(
    selector_map: SelectorMap, sources: list[SelectorSource]
) -> Optional[str]:
    """Evaluate fallback sources in order and return the first usable value."""
    for source in sources:
        value = get_selector_value(selector_map, source)
        if value and value.strip():
            return value.strip()
    return None


def _meta(selector: str, attribute: str = "content") -> SelectorSource:
    return SelectorSource(selector=selector, attribute=attribute)


TITLE_SOURCES = [
    _meta("meta[property='og:title']"),
    _meta("meta[name='og:title']"),
    _meta("meta[name='twitter:title']"),
    _meta("meta[property='twitter:title']"),
    _meta("meta[name='title']"),
    _meta("head > title", TEXT_ATTRIBUTE),
    _meta("h1", TEXT_ATTRIBUTE),
]

DESCRIPTION_SOURCES = [
    _meta("meta[property='og:description']"),
    _meta("meta[name='og:description']"),
    _meta("meta[name='description']"),
    _meta("meta[property='description']"),
    _meta("meta[name='twitter:description']"),
    _meta("meta[property='twitter:description']"),
]

IMAGE_SOURCES = [
    _meta("meta[property='og:image:secure_url']"),
    _meta("meta[property='og:image:url']"),
    _meta("meta[property='og:image']"),
    _meta("meta[name='og:image']"),
    _meta("meta[property='twitter:image']"),
    _meta("meta[name='twitter:image']"),
    _meta("meta[property='twitter:image:src']"),
    _meta("meta[name='twitter:image:src']"),
    _meta("link[rel='image_src']", "href"),
    _meta("meta[name='msapplication-TileImage']"),
]

FAVICON_SOURCES = [
    _meta("link[rel='icon']", "href"),
    _meta("link[rel='shortcut icon']", "href"),
    _meta("link[rel='apple-touch-icon']", "href"),
    _meta("link[rel='apple-touch-icon-precomposed']", "href"),
    _meta("link[rel='mask-icon']", "href"),
]

SITE_NAME_SOURCES = [
    _meta("meta[property='og:site_name']"),
    _meta("meta[name='og:site_name']"),
    _meta("meta[name='application-name']"),
    _meta("meta[name='publisher']"),
]

AUTHOR_SOURCES = [
    _meta("meta[name='author']"),
    _meta("meta[property='article:author']"),
    _meta("meta[name='byl']"),
    _meta("meta[property='book:author']"),
]

PUBLISHER_SOURCES = [
    _meta("meta[property='article:publisher']"),
    _meta("meta[name='publisher']"),
    _meta("meta[property='og:site_name']"),
]

PUBLISHED_TIME_SOURCES = [
    _meta("meta[property='article:published_time']"),
    _meta("meta[name='article:published_time']"),
    _meta("meta[name='pubdate']"),
    _meta("meta[name='publication_date']"),
    _meta("meta[name='date']"),
]

CANONICAL_SOURCES = [
    _meta("link[rel='canonical']", "href"),
    _meta("meta[property='og:url']"),
    _meta("meta[name='og:url']"),
]

FINAL_URL_SOURCES = [
    _meta("meta[property='og:url']"),
    _meta("meta[name='og:url']"),
    _meta("meta[property='al:web:url']"),
    _meta("meta[property='twitter:url']"),
    _meta("meta[name='twitter:url']"),
]

# Unique selectors requested from the scraper, in priority order
SCRAPE_ELEMENTS: list[str] = list(
    dict.fromkeys(
        source.selector
        for sources in (
            TITLE_SOURCES,
            DESCRIPTION_SOURCES,
            IMAGE_SOURCES,
            FAVICON_SOURCES,
            SITE_NAME_SOURCES,
            AUTHOR_SOURCES,
            PUBLISHER_SOURCES,
            PUBLISHED_TIME_SOURCES,
            CANONICAL_SOURCES,
            FINAL_URL_SOURCES,
        )
        for source in sources
    )
)
