"""
SQLite database for persistent publication storage.

This module provides the publication store: one row per file identifier,
holding the document it belongs to and its lifecycle flags. Rows are never
deleted; superseded publications stay behind as ``deleted`` history.

Write paths that must check-then-act (the lifecycle engine) run inside
``PublicationStore.transaction()``, which takes SQLite's write lock up front
with ``BEGIN IMMEDIATE`` so concurrent writers are serialized by the database.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from .exceptions import StorageError
from .models import FileType, Publication, PublicationStatus


# Default database path
DEFAULT_DB_PATH = Path("data/database.sqlite")


def _ensure_db_dir(db_path: Path) -> None:
    """Ensure the database directory exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _serialize_datetime(dt: datetime) -> str:
    """Serialize datetime to ISO format string."""
    return dt.isoformat()


def _deserialize_datetime(s: str) -> datetime:
    """Deserialize ISO format string to datetime."""
    return datetime.fromisoformat(s)


@contextmanager
def connect(db_path: Path, immediate: bool = False) -> Iterator[sqlite3.Connection]:
    """
    Open a connection in autocommit mode, optionally inside a write transaction.

    Any sqlite3 error raised while the connection is in use is re-raised as
    StorageError.
    """
    try:
        conn = sqlite3.connect(str(db_path), timeout=30.0, isolation_level=None)
    except sqlite3.Error as exc:
        raise StorageError(f"Cannot open database {db_path}: {exc}") from exc
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        if immediate:
            conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            if immediate:
                conn.execute("COMMIT")
        except BaseException:
            if immediate and conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
    except sqlite3.Error as exc:
        raise StorageError(f"Database operation failed: {exc}") from exc
    finally:
        conn.close()


class StoreSession:
    """
    Publication queries bound to one open connection.

    Obtained from ``PublicationStore.transaction()``; all calls made through
    one session commit or roll back together.
    """

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get_by_file_id(self, file_id: str) -> Optional[Publication]:
        row = self._conn.execute(
            "SELECT * FROM publications WHERE file_id = ?", (file_id,)
        ).fetchone()
        return _row_to_publication(row) if row else None

    def get_actual_by_document_id(self, document_id: str) -> Optional[Publication]:
        row = self._conn.execute(
            "SELECT * FROM publications WHERE document_id = ? AND file_type = ?",
            (document_id, FileType.ACTUAL.value),
        ).fetchone()
        return _row_to_publication(row) if row else None

    def upsert(self, publication: Publication) -> None:
        """Insert or replace the row keyed by ``publication.file_id``."""
        self._conn.execute("""
            INSERT OR REPLACE INTO publications (
                file_id, document_id, file_type, date_of_creation, status, mime_type
            ) VALUES (?, ?, ?, ?, ?, ?)
        """, (
            publication.file_id,
            publication.document_id,
            publication.file_type.value,
            _serialize_datetime(publication.date_of_creation),
            publication.status.value,
            publication.mime_type,
        ))

    def mark_deleted(self, file_id: str, if_created_at: Optional[datetime] = None) -> bool:
        """
        Flip a row to ``deleted``, leaving its timestamp alone.

        Args:
            file_id: The row to retire
            if_created_at: When given, only retire the row if it is still
                actual and its date_of_creation still equals this value

        Returns:
            True if a row was changed
        """
        if if_created_at is None:
            cursor = self._conn.execute(
                "UPDATE publications SET file_type = ? WHERE file_id = ?",
                (FileType.DELETED.value, file_id),
            )
        else:
            cursor = self._conn.execute(
                "UPDATE publications SET file_type = ? "
                "WHERE file_id = ? AND file_type = ? AND date_of_creation = ?",
                (
                    FileType.DELETED.value,
                    file_id,
                    FileType.ACTUAL.value,
                    _serialize_datetime(if_created_at),
                ),
            )
        return cursor.rowcount > 0

    def mark_deleted_by_document(self, document_id: str, exclude_file_id: Optional[str] = None) -> int:
        """Retire every actual row of a document, optionally sparing one file_id."""
        sql = "UPDATE publications SET file_type = ? WHERE document_id = ? AND file_type = ?"
        params = [FileType.DELETED.value, document_id, FileType.ACTUAL.value]
        if exclude_file_id is not None:
            sql += " AND file_id != ?"
            params.append(exclude_file_id)
        return self._conn.execute(sql, params).rowcount


class PublicationStore:
    """
    SQLite store for publication metadata.

    Thread-safe: every call opens its own connection; SQLite handles
    concurrent access with WAL mode and its write lock.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        _ensure_db_dir(self.db_path)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS publications (
                    file_id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    file_type TEXT NOT NULL,
                    date_of_creation TEXT NOT NULL,
                    status TEXT NOT NULL,
                    mime_type TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_publications_document
                ON publications(document_id, file_type)
            """)

    @contextmanager
    def transaction(self) -> Iterator[StoreSession]:
        """
        Run several store operations as one write transaction.

        The SQLite write lock is taken on entry, so a lookup followed by an
        update inside the block cannot interleave with another writer.

        Raises:
            StorageError: If the transaction cannot be opened or committed
        """
        with connect(self.db_path, immediate=True) as conn:
            yield StoreSession(conn)

    def get_by_file_id(self, file_id: str) -> Optional[Publication]:
        with connect(self.db_path) as conn:
            return StoreSession(conn).get_by_file_id(file_id)

    def get_actual_by_document_id(self, document_id: str) -> Optional[Publication]:
        with connect(self.db_path) as conn:
            return StoreSession(conn).get_actual_by_document_id(document_id)

    def list_by_document_id(self, document_id: str) -> list[Publication]:
        """All publications of a document, newest first."""
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM publications WHERE document_id = ? ORDER BY date_of_creation DESC",
                (document_id,),
            ).fetchall()
            return [_row_to_publication(row) for row in rows]

    def upsert(self, publication: Publication) -> None:
        with self.transaction() as session:
            session.upsert(publication)

    def mark_deleted(self, file_id: str, if_created_at: Optional[datetime] = None) -> bool:
        with self.transaction() as session:
            return session.mark_deleted(file_id, if_created_at=if_created_at)

    def mark_deleted_by_document(self, document_id: str, exclude_file_id: Optional[str] = None) -> int:
        with self.transaction() as session:
            return session.mark_deleted_by_document(document_id, exclude_file_id=exclude_file_id)


def _row_to_publication(row: sqlite3.Row) -> Publication:
    """Convert a database row to a Publication."""
    return Publication(
        file_id=row["file_id"],
        document_id=row["document_id"],
        file_type=FileType(row["file_type"]),
        status=PublicationStatus(row["status"]),
        date_of_creation=_deserialize_datetime(row["date_of_creation"]),
        mime_type=row["mime_type"],
    )
