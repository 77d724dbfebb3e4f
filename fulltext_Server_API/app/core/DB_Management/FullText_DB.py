# FullText_DB.py
# Description: Primary (source of truth) store for extracted attachment full-text, plus per-library version allocation.
#
# Imports
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union
#
# Third-Party Libraries
from loguru import logger
#
# Local Imports
from fulltext_Server_API.app.core.DB_Management.SQLite_Base import SQLiteDatabase
from fulltext_Server_API.app.core.FullText.exceptions import PrimaryStoreError
from fulltext_Server_API.app.core.FullText.models import (
    STATS_COLUMNS,
    FullTextRecord,
    format_primary_timestamp,
    parse_timestamp,
)
#
########################################################################################################################
#
# Classes:


class FullTextDB(SQLiteDatabase):
    """
    Durable, transactional store for full-text records keyed by ``(library_id, item_key)``.

    Writes that must be paired with a search-index call take an explicit ``conn`` obtained from
    ``with db.transaction() as conn:`` so the caller controls commit and rollback.
    """

    error_class = PrimaryStoreError

    _CURRENT_SCHEMA_VERSION = 1
    _SCHEMA_NAME = "fulltext_schema"

    _SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS db_schema_version (
    schema_name TEXT PRIMARY KEY NOT NULL,
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS fulltext_content (
    library_id INTEGER NOT NULL,
    item_key TEXT NOT NULL,
    content TEXT NOT NULL,
    version INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    indexed_chars INTEGER DEFAULT 0,
    total_chars INTEGER DEFAULT 0,
    indexed_pages INTEGER DEFAULT 0,
    total_pages INTEGER DEFAULT 0,
    PRIMARY KEY (library_id, item_key)
);

CREATE INDEX IF NOT EXISTS idx_fulltext_content_library_version ON fulltext_content(library_id, version);
CREATE INDEX IF NOT EXISTS idx_fulltext_content_library_timestamp ON fulltext_content(library_id, timestamp);

-- Highest version issued per library. Bumped inside the write transaction that consumes it.
CREATE TABLE IF NOT EXISTS library_versions (
    library_id INTEGER PRIMARY KEY NOT NULL,
    version INTEGER NOT NULL DEFAULT 0
);

INSERT OR IGNORE INTO db_schema_version (schema_name, version) VALUES ('fulltext_schema', 1);
"""

    def __init__(self, db_path: Union[str, Path], busy_timeout: float = 15):
        logger.info(f"Initializing FullTextDB for path: {db_path}")
        super().__init__(db_path, busy_timeout=busy_timeout)

    # --- Schema ---
    def _get_db_version(self, conn: sqlite3.Connection) -> int:
        try:
            row = conn.execute("SELECT version FROM db_schema_version WHERE schema_name = ?",
                               (self._SCHEMA_NAME,)).fetchone()
            return row['version'] if row else 0
        except sqlite3.OperationalError as e:
            if "no such table" in str(e).lower():
                return 0
            raise

    def _initialize_schema(self):
        conn = self.get_connection()
        current = self._get_db_version(conn)
        if current == self._CURRENT_SCHEMA_VERSION:
            logger.debug(f"FullTextDB schema is current (v{current}) at {self.db_path_str}")
            return
        if current > self._CURRENT_SCHEMA_VERSION:
            raise PrimaryStoreError(
                f"Database schema version {current} is newer than supported version {self._CURRENT_SCHEMA_VERSION}",
                operation="init")
        logger.info(f"Applying FullTextDB schema v{self._CURRENT_SCHEMA_VERSION} to {self.db_path_str}")
        conn.executescript(self._SCHEMA_V1)

    # --- Writes ---
    def upsert(self, record: FullTextRecord, conn: Optional[sqlite3.Connection] = None) -> None:
        """Replaces the row for ``(library_id, key)`` wholesale. Idempotent."""
        columns = ["library_id", "item_key", "content", "version", "timestamp", *STATS_COLUMNS]
        params = [
            record.library_id,
            record.key,
            record.content,
            record.version,
            format_primary_timestamp(record.timestamp),
            *[getattr(record.stats, column) for column in STATS_COLUMNS],
        ]
        query = (f"INSERT OR REPLACE INTO fulltext_content ({', '.join(columns)}) "
                 f"VALUES ({', '.join('?' for _ in params)})")
        self.execute_query(query, params, conn=conn)
        logger.debug(f"Upserted full-text row {record.library_id}/{record.key} at version {record.version}")

    def delete(self, library_id: int, key: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        cursor = self.execute_query("DELETE FROM fulltext_content WHERE library_id = ? AND item_key = ?",
                                    (library_id, key), conn=conn)
        return cursor.rowcount > 0

    def delete_all(self, library_id: int, conn: Optional[sqlite3.Connection] = None) -> int:
        cursor = self.execute_query("DELETE FROM fulltext_content WHERE library_id = ?", (library_id,), conn=conn)
        logger.debug(f"Deleted {cursor.rowcount} full-text rows for library {library_id}")
        return cursor.rowcount

    # --- Reads ---
    def fetch(self, library_id: int, key: str, conn: Optional[sqlite3.Connection] = None) -> Optional[FullTextRecord]:
        row = self.execute_query("SELECT * FROM fulltext_content WHERE library_id = ? AND item_key = ?",
                                 (library_id, key), conn=conn).fetchone()
        return FullTextRecord.from_row(row) if row else None

    def query_versions_above(self, library_id: int, version: int) -> Dict[str, int]:
        """Returns ``{key: version}`` for every record of the library with a version strictly above ``version``."""
        rows = self.execute_query(
            "SELECT item_key, version FROM fulltext_content WHERE library_id = ? AND version > ?",
            (library_id, version)).fetchall()
        return {row['item_key']: row['version'] for row in rows}

    def query_keys_changed_since(self, library_id: int, timestamp: Union[datetime, int, float],
                                 explicit_keys: Iterable[str] = ()) -> List[Tuple[int, str]]:
        """
        Returns the ``(library_id, key)`` pairs of records changed at or after ``timestamp``,
        unioned with any of ``explicit_keys`` that exist. Used by clients that sync by wall-clock
        time rather than by version.

        ``timestamp`` may be a datetime or a Unix timestamp.
        """
        since = format_primary_timestamp(parse_timestamp(timestamp))
        query = "SELECT library_id, item_key FROM fulltext_content WHERE library_id = ? AND timestamp >= ?"
        params: List = [library_id, since]
        explicit_keys = list(explicit_keys)
        if explicit_keys:
            query += (" UNION SELECT library_id, item_key FROM fulltext_content WHERE library_id = ? AND item_key IN ("
                      + ", ".join("?" for _ in explicit_keys) + ")")
            params.extend([library_id, *explicit_keys])
        rows = self.execute_query(query, params).fetchall()
        return [(row['library_id'], row['item_key']) for row in rows]

    def iter_library(self, library_id: int) -> Iterator[FullTextRecord]:
        rows = self.execute_query("SELECT * FROM fulltext_content WHERE library_id = ? ORDER BY version",
                                  (library_id,)).fetchall()
        for row in rows:
            yield FullTextRecord.from_row(row)

    def get_library_version(self, library_id: int) -> int:
        row = self.execute_query("SELECT version FROM library_versions WHERE library_id = ?",
                                 (library_id,)).fetchone()
        return row['version'] if row else 0


class VersionAllocator:
    """
    Issues strictly increasing versions per library.

    ``next_version`` must run on the connection of an open write transaction: the bump and the
    write that consumes it commit or roll back together, and the transaction's write lock keeps
    two writers from receiving the same number. A rolled-back bump can hand its number out again,
    so a caller that finds the number already taken in the search index passes the index's
    version as ``floor`` to move past it.
    """

    def __init__(self, db: FullTextDB):
        self.db = db

    def next_version(self, conn: sqlite3.Connection, library_id: int, floor: int = 0) -> int:
        if not conn.in_transaction:
            raise PrimaryStoreError("Library versions can only be allocated inside a write transaction",
                                    operation="allocate_version", context={'library_id': library_id})
        # Never go below a version already present in the store
        self.db.execute_query(
            """
            INSERT INTO library_versions (library_id, version)
            VALUES (?, MAX(?, (SELECT COALESCE(MAX(version), 0) FROM fulltext_content WHERE library_id = ?)) + 1)
            ON CONFLICT(library_id) DO UPDATE SET version = MAX(
                library_versions.version,
                (SELECT COALESCE(MAX(version), 0) FROM fulltext_content WHERE library_id = ?),
                ?
            ) + 1
            """,
            (library_id, floor, library_id, library_id, floor), conn=conn)
        row = self.db.execute_query("SELECT version FROM library_versions WHERE library_id = ?",
                                    (library_id,), conn=conn).fetchone()
        logger.debug(f"Allocated version {row['version']} for library {library_id}")
        return row['version']

#
# End of FullText_DB.py
#######################################################################################################################
