"""
Database-backed bookmark store for the bookmerge CLI.

Implements the storage side of the engine's contract: it hands out
BookmarkRecord snapshots and carries out update_bookmark / delete_bookmark
instructions produced by the applier. apply() runs a whole plan in one
transaction, so a merge is committed completely or not at all.
"""
import logging
from pathlib import Path
from typing import Optional, List, Generator, Any, Dict, Iterable
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine, select, func, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from bookmerge.applier import DELETE, UPDATE, StorageOperation
from bookmerge.config import get_config
from bookmerge.errors import BookmarkNotFoundError
from bookmerge.models import Base, Bookmark, Event
from bookmerge.records import BookmarkRecord

logger = logging.getLogger(__name__)

# Columns the engine may write through update_bookmark()
UPDATABLE_FIELDS = {
    'title', 'url', 'description', 'favicon', 'category', 'tags',
    'is_favorite', 'date_added', 'date_modified', 'visits',
}


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class Database:
    """
    Minimal bookmark store.

    Provides exactly what duplicate detection and merging need: ordered
    snapshots, field updates and deletes, with an audit trail of events.
    """

    def __init__(self, path: Optional[str] = None, url: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            path: Database file path (for SQLite). Uses config default if not provided.
            url: Full database URL (overrides path).

        Examples:
            Database()  # Uses config default
            Database(path="bookmarks.db")  # SQLite file
            Database(url="sqlite:///:memory:")
        """
        config = get_config()

        if url:
            self.url = url
            self.path = None
        elif path:
            self.path = Path(path)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.url = f"sqlite:///{self.path}"
        else:
            self.url = config.get_database_url()
            if config.is_sqlite():
                self.path = config.get_database_path()
                self.path.parent.mkdir(parents=True, exist_ok=True)
            else:
                self.path = None

        if self.url.startswith("sqlite:"):
            engine_args = {
                "connect_args": {"check_same_thread": False},
                "echo": config.database_echo,
            }
            # In-memory databases live as long as their single connection
            if ":memory:" not in self.url:
                engine_args["poolclass"] = NullPool
            self.engine = create_engine(self.url, **engine_args)
            event.listen(self.engine, "connect", self._configure_sqlite)
        else:
            self.engine = create_engine(
                self.url,
                pool_pre_ping=True,
                pool_recycle=3600,
                echo=config.database_echo
            )

        self.Session = sessionmaker(bind=self.engine, autoflush=False)
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _configure_sqlite(dbapi_conn, connection_record):
        """Configure SQLite pragmas."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.execute("PRAGMA synchronous = NORMAL")
        cursor.execute("PRAGMA temp_store = MEMORY")
        cursor.close()

    @contextmanager
    def session(self, expire_on_commit: bool = True) -> Generator[Session, None, None]:
        """
        Context manager for database sessions.

        Yields:
            SQLAlchemy session with automatic commit/rollback
        """
        session = self.Session()
        session.expire_on_commit = expire_on_commit
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def to_record(bookmark: Bookmark) -> BookmarkRecord:
        """Convert a stored row into an engine snapshot."""
        return BookmarkRecord(
            id=bookmark.id,
            title=bookmark.title or '',
            url=bookmark.url,
            category=bookmark.category or '',
            tags=tuple(bookmark.tags or ()),
            description=bookmark.description,
            favicon=bookmark.favicon,
            is_favorite=bool(bookmark.is_favorite),
            date_added=_aware(bookmark.date_added),
            date_modified=_aware(bookmark.date_modified),
            visits=bookmark.visits or 0,
        )

    def _next_seq(self, session: Session) -> int:
        current = session.execute(select(func.max(Bookmark.seq))).scalar()
        return (current or 0) + 1

    def add(self, url: str, title: str = '', id: Optional[str] = None, **fields) -> Bookmark:
        """
        Add a bookmark.

        Args:
            url: The URL to bookmark
            title: Bookmark title
            id: Explicit id (generated when omitted)
            **fields: Other columns (tags, category, description, is_favorite, ...)

        Returns:
            Created bookmark instance

        Raises:
            ValueError: If a bookmark with the same id already exists
        """
        with self.session(expire_on_commit=False) as session:
            if id is not None and session.get(Bookmark, id) is not None:
                raise ValueError(f"Bookmark already exists: {id}")

            values = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
            if 'tags' in values:
                values['tags'] = list(values['tags'] or [])

            bookmark = Bookmark(url=url, title=title or '', seq=self._next_seq(session), **values)
            if id is not None:
                bookmark.id = id

            session.add(bookmark)
            session.flush()

            session.add(Event(
                event_type="bookmark_added", entity_id=bookmark.id, entity_url=url,
                event_data={"title": bookmark.title, "tags": list(bookmark.tags or [])}
            ))
            return bookmark

    def import_records(self, records: Iterable[BookmarkRecord]) -> int:
        """
        Store engine records, preserving their ids and order.

        Records whose id is already stored are skipped.

        Returns:
            Number of bookmarks added
        """
        added = 0
        for record in records:
            if self.get(record.id) is not None:
                logger.warning(f"Skipping bookmark {record.id}: id already stored")
                continue
            data = record.to_dict()
            data.pop('id')
            data['date_added'] = record.date_added
            data['date_modified'] = record.date_modified
            self.add(id=record.id, **data)
            added += 1
        logger.info(f"Imported {added} bookmarks")
        return added

    def get(self, id: str) -> Optional[Bookmark]:
        """Get a bookmark by id."""
        with self.session(expire_on_commit=False) as session:
            return session.get(Bookmark, id)

    def all(self) -> List[Bookmark]:
        """All bookmarks in insertion order."""
        with self.session(expire_on_commit=False) as session:
            return list(session.execute(select(Bookmark).order_by(Bookmark.seq)).scalars())

    def snapshot(self) -> List[BookmarkRecord]:
        """Frozen copy of the collection, in collection order, for a scan."""
        return [self.to_record(b) for b in self.all()]

    def update_bookmark(self, bookmark_id: str, fields: Dict[str, Any]) -> BookmarkRecord:
        """
        Update fields of a bookmark.

        Args:
            bookmark_id: Bookmark id
            fields: Column values to write; unknown keys are ignored

        Returns:
            The updated bookmark as a record

        Raises:
            BookmarkNotFoundError: If the bookmark does not exist
        """
        with self.session(expire_on_commit=False) as session:
            return self._update(session, bookmark_id, fields)

    def _update(self, session: Session, bookmark_id: str, fields: Dict[str, Any]) -> BookmarkRecord:
        bookmark = session.get(Bookmark, bookmark_id)
        if bookmark is None:
            raise BookmarkNotFoundError(bookmark_id)

        changes = {}
        for key, value in fields.items():
            if key not in UPDATABLE_FIELDS:
                logger.debug(f"Ignoring unknown field {key!r} for bookmark {bookmark_id}")
                continue
            if key == 'tags':
                value = list(value or [])
            old_value = getattr(bookmark, key)
            if isinstance(old_value, datetime):
                old_value = _aware(old_value)
            if old_value != value:
                changes[key] = {"old": _jsonable(old_value), "new": _jsonable(value)}
                setattr(bookmark, key, value)

        if changes:
            session.add(Event(
                event_type="bookmark_updated", entity_id=bookmark_id,
                entity_url=bookmark.url, event_data=changes
            ))

        session.flush()
        return self.to_record(bookmark)

    def delete_bookmark(self, bookmark_id: str) -> None:
        """
        Delete a bookmark.

        Raises:
            BookmarkNotFoundError: If the bookmark does not exist
        """
        with self.session() as session:
            self._delete(session, bookmark_id)

    def _delete(self, session: Session, bookmark_id: str) -> None:
        bookmark = session.get(Bookmark, bookmark_id)
        if bookmark is None:
            raise BookmarkNotFoundError(bookmark_id)

        url = bookmark.url
        title = bookmark.title
        tags = list(bookmark.tags or [])
        session.delete(bookmark)
        session.flush()

        session.add(Event(
            event_type="bookmark_deleted", entity_id=bookmark_id, entity_url=url,
            event_data={"title": title, "tags": tags}
        ))

    def apply(self, operations: Iterable[StorageOperation]) -> int:
        """
        Carry out a merge or delete plan in a single transaction.

        Either every operation is committed or, when any of them fails,
        none is; the error propagates unchanged.

        Args:
            operations: Update/delete instructions in plan order

        Returns:
            Number of operations applied

        Raises:
            BookmarkNotFoundError: If an operation names a missing bookmark
        """
        applied = 0
        with self.session() as session:
            for op in operations:
                if op.kind == UPDATE:
                    self._update(session, op.bookmark_id, dict(op.fields))
                elif op.kind == DELETE:
                    self._delete(session, op.bookmark_id)
                else:
                    raise ValueError(f"Unknown storage operation: {op.kind}")
                applied += 1
        logger.debug(f"Committed {applied} storage operations")
        return applied

    def events(self, entity_id: Optional[str] = None) -> List[Event]:
        """Audit trail, oldest first, optionally for one bookmark."""
        with self.session(expire_on_commit=False) as session:
            query = select(Event).order_by(Event.id)
            if entity_id is not None:
                query = query.where(Event.entity_id == entity_id)
            return list(session.execute(query).scalars())

    def stats(self) -> Dict[str, Any]:
        """
        Get database statistics.

        Returns:
            Dictionary with counts and statistics
        """
        with self.session() as session:
            stats = {
                "total_bookmarks": session.query(func.count(Bookmark.id)).scalar(),
                "favorite_count": session.query(func.count(Bookmark.id)).filter(Bookmark.is_favorite == True).scalar(),
                "total_visits": session.query(func.sum(Bookmark.visits)).scalar() or 0,
                "database_url": self.url,
            }

            if self.path and self.path.exists():
                stats["database_size"] = self.path.stat().st_size
                stats["database_path"] = str(self.path)

            return stats


# Global database instance
_db: Optional[Database] = None


def get_db(path: Optional[str] = None, reload: bool = False) -> Database:
    """
    Get the global database instance.

    Args:
        path: Database file path
        reload: Force new connection

    Returns:
        Database instance
    """
    global _db
    if _db is None or reload or path:
        _db = Database(path)
    return _db
