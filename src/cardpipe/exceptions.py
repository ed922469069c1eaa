"""Exceptions raised by Cardpipe."""


class CardpipeError(Exception):
    """Base error for the enrichment pipeline."""

    pass


class CardNotFoundError(CardpipeError):
    """The card vanished between read and write."""

    def __init__(self, card_id: str, message: str = ""):
        self.card_id = card_id
        super().__init__(message or f"Card {card_id} not found")


class AssetNotFoundError(CardpipeError):
    """An asset reference does not exist in storage."""

    def __init__(self, storage_id: str):
        self.storage_id = storage_id
        super().__init__(f"Asset {storage_id} not found")


class StageTransitionError(CardpipeError):
    """A worker attempted an illegal stage transition."""

    pass


class ScraperError(CardpipeError):
    """Error from the scraping service.

    ``error_type`` is recorded on the failed link preview (scrape_error,
    rate_limit, timeout, network_error).
    """

    def __init__(self, message: str, error_type: str = "scrape_error"):
        self.error_type = error_type
        super().__init__(message)
