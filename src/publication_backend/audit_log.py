"""
Append-only audit log of uploads, views and deletions.

Entries are for observability only: a failed append is logged and reported
as ``False`` to the caller, never raised, so it cannot fail the request that
triggered it.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .database import DEFAULT_DB_PATH, _deserialize_datetime, _ensure_db_dir, _serialize_datetime, connect
from .exceptions import StorageError
from .models import ActionType, LogEntry, Requester

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 500


class AuditLog:
    """
    SQLite-backed audit log, stored next to the publications table.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        _ensure_db_dir(self.db_path)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    action_type TEXT NOT NULL,
                    ip TEXT,
                    user_agent TEXT,
                    file_id TEXT,
                    ts TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_logs_ts
                ON logs(ts DESC)
            """)

    def append(self, action: ActionType, requester: Optional[Requester] = None, file_id: Optional[str] = None) -> int:
        """
        Insert one entry.

        Returns:
            The id of the new entry

        Raises:
            StorageError: If the insert fails
        """
        requester = requester or Requester()
        with connect(self.db_path) as conn:
            cursor = conn.execute(
                "INSERT INTO logs (action_type, ip, user_agent, file_id, ts) VALUES (?, ?, ?, ?, ?)",
                (
                    action.value,
                    requester.ip,
                    requester.user_agent,
                    file_id,
                    _serialize_datetime(datetime.now(timezone.utc)),
                ),
            )
            return cursor.lastrowid

    def record(self, action: ActionType, requester: Optional[Requester] = None, file_id: Optional[str] = None) -> bool:
        """
        Best-effort variant of ``append``.

        Returns:
            True if the entry was written, False if the insert failed
        """
        try:
            self.append(action, requester=requester, file_id=file_id)
        except StorageError as exc:
            logger.warning(f"Failed to record {action.value} log entry for {file_id}: {exc}")
            return False
        return True

    def list_entries(self, limit: int = DEFAULT_LIST_LIMIT) -> List[LogEntry]:
        """
        List the most recent entries, newest first.

        Args:
            limit: Maximum number of entries to return
        """
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM logs ORDER BY ts DESC, id DESC LIMIT ?", (limit,)
            ).fetchall()

            return [
                LogEntry(
                    id=row["id"],
                    action_type=ActionType(row["action_type"]),
                    ip=row["ip"] or "",
                    user_agent=row["user_agent"] or "",
                    file_id=row["file_id"],
                    ts=_deserialize_datetime(row["ts"]),
                )
                for row in rows
            ]
