"""Logging setup for Cardpipe."""

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for CLI runs."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # Keep SQLAlchemy at WARNING
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
