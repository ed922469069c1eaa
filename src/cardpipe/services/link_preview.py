"""Build link previews from scrape results."""

from dataclasses import dataclass
from typing import Any, Optional

from cardpipe.models.link_preview import LinkPreview, PreviewStatus
from cardpipe.models.processing import now_millis
from cardpipe.services.sanitizers import sanitize_image_url, sanitize_text, sanitize_url
from cardpipe.services.selectors import (
    AUTHOR_SOURCES,
    CANONICAL_SOURCES,
    DESCRIPTION_SOURCES,
    FAVICON_SOURCES,
    FINAL_URL_SOURCES,
    IMAGE_SOURCES,
    PUBLISHED_TIME_SOURCES,
    PUBLISHER_SOURCES,
    SITE_NAME_SOURCES,
    TITLE_SOURCES,
    ScrapeSelectorResult,
    first_from_sources,
    to_selector_map,
)

PREVIEW_SOURCE = "scraper"

TITLE_MAX_LENGTH = 512
DESCRIPTION_MAX_LENGTH = 2048
SHORT_FIELD_MAX_LENGTH = 256
PUBLISHED_AT_MAX_LENGTH = 128


@dataclass
class ParsedLinkPreview:
    """Sanitized page fields extracted from a scrape."""

    final_url: str
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    favicon_url: Optional[str] = None
    site_name: Optional[str] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    published_at: Optional[str] = None
    canonical_url: Optional[str] = None
    raw: Optional[list[dict[str, Any]]] = None


def build_debug_raw(
    results: Optional[list[ScrapeSelectorResult]],
) -> Optional[list[dict[str, Any]]]:
    """Keep the first matched element per selector for debugging."""
    if results is None:
        return None
    raw = []
    for entry in results:
        first = entry.results[:1]
        raw.append(
            {
                "selector": entry.selector,
                "results": [
                    {
                        "text": item.text,
                        "attributes": [
                            {"name": attr.name, "value": attr.value} for attr in item.attributes
                        ],
                    }
                    for item in first
                ],
            }
        )
    return raw


def parse_link_preview(
    normalized_url: str, results: Optional[list[ScrapeSelectorResult]]
) -> ParsedLinkPreview:
    """Resolve and sanitize every preview field from raw scrape results."""
    selector_map = to_selector_map(results)

    published_raw = first_from_sources(selector_map, PUBLISHED_TIME_SOURCES)
    canonical_url = sanitize_url(normalized_url, first_from_sources(selector_map, CANONICAL_SOURCES))
    final_url = sanitize_url(normalized_url, first_from_sources(selector_map, FINAL_URL_SOURCES))

    return ParsedLinkPreview(
        title=sanitize_text(first_from_sources(selector_map, TITLE_SOURCES), TITLE_MAX_LENGTH),
        description=sanitize_text(
            first_from_sources(selector_map, DESCRIPTION_SOURCES), DESCRIPTION_MAX_LENGTH
        ),
        image_url=sanitize_image_url(normalized_url, first_from_sources(selector_map, IMAGE_SOURCES)),
        favicon_url=sanitize_url(normalized_url, first_from_sources(selector_map, FAVICON_SOURCES)),
        site_name=sanitize_text(
            first_from_sources(selector_map, SITE_NAME_SOURCES), SHORT_FIELD_MAX_LENGTH
        ),
        author=sanitize_text(first_from_sources(selector_map, AUTHOR_SOURCES), SHORT_FIELD_MAX_LENGTH),
        publisher=sanitize_text(
            first_from_sources(selector_map, PUBLISHER_SOURCES), SHORT_FIELD_MAX_LENGTH
        ),
        published_at=published_raw.strip()[:PUBLISHED_AT_MAX_LENGTH] if published_raw else None,
        canonical_url=canonical_url,
        final_url=final_url or canonical_url or normalized_url,
        raw=build_debug_raw(results),
    )


def build_success_preview(url: str, parsed: ParsedLinkPreview, **stored: Any) -> LinkPreview:
    """Wrap parsed fields (plus any stored asset fields) in a success preview."""
    return LinkPreview(
        status=PreviewStatus.SUCCESS,
        source=PREVIEW_SOURCE,
        fetched_at=now_millis(),
        url=url,
        final_url=parsed.final_url,
        canonical_url=parsed.canonical_url,
        title=parsed.title,
        description=parsed.description,
        image_url=parsed.image_url,
        favicon_url=parsed.favicon_url,
        site_name=parsed.site_name,
        author=parsed.author,
        publisher=parsed.publisher,
        published_at=parsed.published_at,
        raw=parsed.raw,
        **stored,
    )


def build_error_preview(
    url: str,
    error_type: str,
    message: Optional[str] = None,
    screenshot_storage_id: Optional[str] = None,
    screenshot_updated_at: Optional[int] = None,
) -> LinkPreview:
    """Build an error preview, carrying over an existing screenshot."""
    preview = LinkPreview(
        status=PreviewStatus.ERROR,
        source=PREVIEW_SOURCE,
        fetched_at=now_millis(),
        url=url,
        final_url=url,
        error={"type": error_type, **({"message": message} if message else {})},
    )
    if screenshot_storage_id:
        preview.screenshot_storage_id = screenshot_storage_id
        preview.screenshot_updated_at = screenshot_updated_at
    return preview
