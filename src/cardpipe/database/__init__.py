"""Persistence layer for Cardpipe."""

from cardpipe.database.repository import Repository
from cardpipe.database.storage import AssetStorage

__all__ = ["AssetStorage", "Repository"]
