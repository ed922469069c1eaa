"""Blob storage for card assets."""

import uuid
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from cardpipe.database.schema import AssetRecord
from cardpipe.exceptions import AssetNotFoundError


class AssetStorage:
    """Stores opaque blobs (thumbnails, preview images, screenshots) by ID."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def store(self, data: bytes, content_type: Optional[str] = None) -> str:
        """Store a blob and return its storage ID."""
        storage_id = uuid.uuid4().hex
        with self.session_factory() as session:
            session.add(
                AssetRecord(
                    id=storage_id,
                    content_type=content_type,
                    size=len(data),
                    data=data,
                )
            )
            session.commit()
        return storage_id

    def get(self, storage_id: str) -> Optional[bytes]:
        """Get blob bytes, or None if missing."""
        with self.session_factory() as session:
            record = session.get(AssetRecord, storage_id)
            return record.data if record else None

    def exists(self, storage_id: str) -> bool:
        return self.get(storage_id) is not None

    def delete(self, storage_id: str) -> None:
        """Delete a blob.

        Raises:
            AssetNotFoundError: If no blob has this ID
        """
        with self.session_factory() as session:
            record = session.get(AssetRecord, storage_id)
            if record is None:
                raise AssetNotFoundError(storage_id)
            session.delete(record)
            session.commit()
