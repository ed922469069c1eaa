"""HTTP client for the selector scraping service."""

import logging
from typing import Any, Optional

import requests  # type: ignore[import-untyped]
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from cardpipe.exceptions import ScraperError
from cardpipe.services.selectors import SCRAPE_ELEMENTS, ScrapeSelectorResult

logger = logging.getLogger(__name__)


class ScraperClient:
    """Client for a scraping service that evaluates CSS selectors on a page.

    The service receives ``{"url": ..., "elements": [{"selector": ...}]}`` and
    answers ``{"success": true, "result": {"selectors": [...]}}`` or
    ``{"success": false, "errors": [{"message": ...}]}``.
    """

    def __init__(self, endpoint: str, api_key: str = "", timeout: float = 30.0):
        """Initialize the scraper client.

        Args:
            endpoint: URL of the scrape endpoint
            api_key: Optional bearer token
            timeout: Request timeout in seconds
        """
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a scrape request and decode the JSON body.

        Raises:
            ScraperError: If the request fails or the body is not JSON
        """
        try:
            response = requests.post(
                self.endpoint, json=payload, headers=self._headers(), timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.ConnectionError as e:
            raise ScraperError(
                f"Cannot connect to scraper at {self.endpoint}", error_type="network_error"
            ) from e
        except requests.exceptions.Timeout as e:
            raise ScraperError("Scraper request timed out", error_type="timeout") from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            error_type = "rate_limit" if status == 429 else "scrape_error"
            raise ScraperError(f"Scraper request failed: {e}", error_type=error_type) from e
        except requests.exceptions.RequestException as e:
            raise ScraperError(f"Scraper request failed: {e}", error_type="network_error") from e

        try:
            return response.json()
        except ValueError as e:
            raise ScraperError("Scraper returned invalid JSON") from e

    @retry(
        retry=retry_if_exception_type(ScraperError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def scrape(
        self, url: str, elements: Optional[list[str]] = None
    ) -> list[ScrapeSelectorResult]:
        """Scrape a page for the given selectors.

        Args:
            url: Normalized page URL
            elements: Selectors to evaluate (defaults to every preview selector)

        Returns:
            One ScrapeSelectorResult per selector the service answered

        Raises:
            ScraperError: If the scrape fails after retries
        """
        selectors = elements if elements is not None else SCRAPE_ELEMENTS
        logger.debug("Scraping %s for %d selectors", url, len(selectors))
        payload = self._post(
            {"url": url, "elements": [{"selector": selector} for selector in selectors]}
        )

        if not payload.get("success"):
            messages = [
                error.get("message")
                for error in payload.get("errors") or []
                if isinstance(error, dict) and error.get("message")
            ]
            message = "; ".join(messages) or "Unknown scrape error"
            lowered = message.lower()
            error_type = "rate_limit" if "rate" in lowered or "limit" in lowered else "scrape_error"
            logger.warning("Scrape failed for %s: %s", url, message)
            raise ScraperError(message, error_type=error_type)

        result = payload.get("result") or {}
        return [
            ScrapeSelectorResult.from_dict(entry)
            for entry in result.get("selectors") or []
            if isinstance(entry, dict) and entry.get("selector")
        ]
