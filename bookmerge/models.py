"""
SQLAlchemy models for the bookmark store used by the bookmerge CLI.

The duplicate engine itself never touches these; Database converts rows into
BookmarkRecord snapshots and applies the engine's update/delete operations.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import String, Text, Boolean, Integer, DateTime, JSON, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class Bookmark(Base):
    """
    Stored bookmark.

    Attributes:
        id: String primary key (exposed to the engine as BookmarkRecord.id)
        seq: Insertion counter; defines collection order
        url: The bookmark URL exactly as saved
        title: Bookmark title
        description: Optional description
        favicon: Optional favicon reference
        category: Category path such as "Work/Projects"
        tags: Tag names in display order
        is_favorite: Favorite flag
        date_added: Creation timestamp
        date_modified: Last modification timestamp
        visits: Visit counter
    """
    __tablename__ = 'bookmarks'

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, index=True, default=0)
    url: Mapped[str] = mapped_column(String(2048), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False, default='')
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    favicon: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    category: Mapped[str] = mapped_column(String(512), nullable=False, default='')
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    is_favorite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    date_added: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    date_modified: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    visits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Bookmark(id={self.id!r}, title={self.title[:30]!r}, url={self.url[:50]!r})>"


class Event(Base):
    """
    Audit trail entry for changes made to the store.

    Event types: bookmark_added, bookmark_updated, bookmark_deleted.
    entity_url is kept so deleted bookmarks remain traceable.
    """
    __tablename__ = 'events'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    event_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index('ix_events_entity', 'entity_id'),
    )

    def __repr__(self) -> str:
        return f"<Event(type={self.event_type!r}, entity={self.entity_id!r})>"
