"""
SQLite Record Store - local persistence for synchronizable records

One table holds every record type. Payloads are stored as JSON; the record's
update timestamp is extracted into an indexed column so incremental queries
(get_updated_since) run in SQL.

Features:
- Persistent connection shared across threads, guarded by a lock
- WAL mode for concurrent readers
- Upsert by (record_type, id)
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional
import json
import logging
import sqlite3
import threading

from ..errors import LocalStoreError
from ..models import SyncableRecord
from ..resolver import record_timestamp
from .base import RecordStore, require_id

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    record_type TEXT NOT NULL,
    id TEXT NOT NULL,
    updated_at TEXT,
    payload TEXT NOT NULL,
    PRIMARY KEY (record_type, id)
);
CREATE INDEX IF NOT EXISTS idx_records_updated ON records(record_type, updated_at);
"""


def _sortable_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Fixed-width UTC string so lexical order equals time order."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class SQLiteRecordStore(RecordStore):
    """
    Local record store backed by a SQLite file.

    Every sqlite3 error is raised as LocalStoreError so the orchestrator can
    treat it as fatal to the current operation.
    """

    def __init__(self, db_path: Path, enable_wal: bool = True):
        """
        Args:
            db_path: Path to SQLite database file (parent dirs are created)
            enable_wal: Enable WAL mode for concurrent readers (default: True)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            # check_same_thread=False: the sync worker and the host share it
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                isolation_level=None,
            )
            self._conn.row_factory = sqlite3.Row
            if enable_wal:
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise LocalStoreError(f"Failed to open local store {self.db_path}: {e}") from e

    def _execute(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise LocalStoreError(f"Local store query failed: {e}") from e

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> SyncableRecord:
        try:
            return json.loads(row["payload"])
        except ValueError as e:
            raise LocalStoreError(
                f"Corrupt payload for {row['record_type']}:{row['id']}: {e}"
            ) from e

    @staticmethod
    def _row_params(record_type: str, record: SyncableRecord) -> tuple:
        record_id = require_id(record)
        return (
            record_type,
            record_id,
            _sortable_timestamp(record_timestamp(record)),
            json.dumps(record, default=str),
        )

    def get_all(self, record_type: str) -> List[SyncableRecord]:
        rows = self._execute(
            "SELECT record_type, id, payload FROM records WHERE record_type = ? ORDER BY rowid",
            (record_type,),
        )
        return [self._row_to_record(row) for row in rows]

    def get_by_id(self, record_type: str, record_id: str) -> Optional[SyncableRecord]:
        rows = self._execute(
            "SELECT record_type, id, payload FROM records WHERE record_type = ? AND id = ?",
            (record_type, str(record_id)),
        )
        return self._row_to_record(rows[0]) if rows else None

    def get_updated_since(self, record_type: str,
                          since: Optional[datetime]) -> List[SyncableRecord]:
        if since is None:
            return self.get_all(record_type)
        rows = self._execute(
            """SELECT record_type, id, payload FROM records
               WHERE record_type = ? AND (updated_at IS NULL OR updated_at >= ?)
               ORDER BY rowid""",
            (record_type, _sortable_timestamp(since)),
        )
        return [self._row_to_record(row) for row in rows]

    def save(self, record_type: str, record: SyncableRecord) -> None:
        self._execute(
            """INSERT INTO records (record_type, id, updated_at, payload)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(record_type, id) DO UPDATE SET
                   updated_at = excluded.updated_at,
                   payload = excluded.payload""",
            self._row_params(record_type, record),
        )

    def bulk_save(self, record_type: str, records: Iterable[SyncableRecord]) -> int:
        params = [self._row_params(record_type, record) for record in records]
        if not params:
            return 0
        with self._lock:
            try:
                self._conn.execute("BEGIN")
                self._conn.executemany(
                    """INSERT INTO records (record_type, id, updated_at, payload)
                       VALUES (?, ?, ?, ?)
                       ON CONFLICT(record_type, id) DO UPDATE SET
                           updated_at = excluded.updated_at,
                           payload = excluded.payload""",
                    params,
                )
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                try:
                    self._conn.execute("ROLLBACK")
                except sqlite3.Error:
                    logger.debug("Rollback after failed bulk save also failed", exc_info=True)
                raise LocalStoreError(f"Bulk save of {len(params)} {record_type} failed: {e}") from e
        return len(params)

    def delete(self, record_type: str, record_id: str) -> bool:
        with self._lock:
            try:
                cursor = self._conn.execute(
                    "DELETE FROM records WHERE record_type = ? AND id = ?",
                    (record_type, str(record_id)),
                )
                return cursor.rowcount > 0
            except sqlite3.Error as e:
                raise LocalStoreError(f"Delete of {record_type}:{record_id} failed: {e}") from e

    def count(self, record_type: str) -> int:
        rows = self._execute(
            "SELECT COUNT(*) AS n FROM records WHERE record_type = ?", (record_type,)
        )
        return int(rows[0]["n"])

    def record_types(self) -> List[str]:
        rows = self._execute("SELECT DISTINCT record_type FROM records ORDER BY record_type")
        return [row["record_type"] for row in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
