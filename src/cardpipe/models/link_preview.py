"""Link preview model for Cardpipe."""

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Optional


class PreviewStatus(str, Enum):
    """Outcome of a link preview fetch."""

    SUCCESS = "success"
    ERROR = "error"


@dataclass
class LinkPreview:
    """Scraped title/description/image/screenshot data for a linked page."""

    status: PreviewStatus
    url: str
    source: str = "scraper"
    fetched_at: Optional[int] = None  # epoch ms

    # Page fields
    final_url: Optional[str] = None
    canonical_url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    favicon_url: Optional[str] = None
    site_name: Optional[str] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    published_at: Optional[str] = None

    # Stored OG image
    image_storage_id: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    image_updated_at: Optional[int] = None

    # Stored page screenshot
    screenshot_storage_id: Optional[str] = None
    screenshot_width: Optional[int] = None
    screenshot_height: Optional[int] = None
    screenshot_updated_at: Optional[int] = None

    error: Optional[dict[str, Any]] = None
    raw: Optional[list[dict[str, Any]]] = None

    # Keys we do not model, kept verbatim
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate and convert fields after initialization."""
        if isinstance(self.status, str):
            self.status = PreviewStatus(self.status)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stored form, omitting unset fields."""
        data = dict(self.extra)
        for key, value in asdict(self).items():
            if key == "extra" or value is None:
                continue
            data[key] = value.value if isinstance(value, Enum) else value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LinkPreview":
        known = {f.name for f in fields(cls)} - {"extra"}
        values = {key: value for key, value in data.items() if key in known}
        extra = {key: value for key, value in data.items() if key not in known}
        values.setdefault("status", PreviewStatus.ERROR)
        values.setdefault("url", "")
        return cls(extra=extra, **values)
