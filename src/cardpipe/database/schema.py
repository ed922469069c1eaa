"""SQLAlchemy database schema for Cardpipe."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    create_engine,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    sessionmaker,
)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class CardRecord(Base):
    """Database record for a card."""

    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    type: Mapped[str] = mapped_column(String(20), default="text", nullable=False)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    file_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    thumbnail_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    colors: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)

    tags: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    ai_tags: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    ai_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_transcript: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    card_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True
    )
    metadata_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    metadata_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_status: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_favorited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_cards_user_deleted", "user_id", "is_deleted"),
        Index("idx_cards_type", "type"),
        Index("idx_cards_created_at", "created_at"),
    )


class AssetRecord(Base):
    """Opaque blob referenced by cards (thumbnails, OG images, screenshots)."""

    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    content_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


def get_engine(database_url: str):
    """Create database engine."""
    return create_engine(database_url, echo=False)


def get_session_factory(engine) -> sessionmaker[Session]:
    """Create session factory."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_database(database_url: str) -> sessionmaker[Session]:
    """Initialize database and return session factory."""
    engine = get_engine(database_url)
    Base.metadata.create_all(engine)
    return get_session_factory(engine)
