# sqlite_index.py
# Description: SQLite FTS5 implementation of the externally-versioned search index
#
# Imports
import re
import sqlite3
from pathlib import Path
from typing import Dict, List, Optional, Union
#
# Third-Party Libraries
from loguru import logger
#
# Local Imports
from fulltext_Server_API.app.core.DB_Management.SQLite_Base import SQLiteDatabase
from fulltext_Server_API.app.core.FullText.exceptions import (
    FullTextConfigurationError,
    IndexConflictError,
    SearchIndexError,
)
from fulltext_Server_API.app.core.FullText.models import (
    STATS_COLUMNS,
    FullTextStats,
    IndexDocument,
    format_index_timestamp,
    parse_timestamp,
    split_document_id,
)
from fulltext_Server_API.app.core.FullText.search_index import IndexHandles, SearchIndexAdapter
#
########################################################################################################################
#
# Constants:

DEFAULT_COLLECTION = "item_fulltext"

_COLLECTION_NAME_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

_COLLECTION_SCHEMA = """
CREATE TABLE IF NOT EXISTS {c} (
    doc_id TEXT PRIMARY KEY NOT NULL,
    library_id INTEGER NOT NULL,
    content TEXT NOT NULL,
    version INTEGER NOT NULL,
    timestamp TEXT,
    indexed_chars INTEGER DEFAULT 0,
    total_chars INTEGER DEFAULT 0,
    indexed_pages INTEGER DEFAULT 0,
    total_pages INTEGER DEFAULT 0,
    language TEXT
);

CREATE INDEX IF NOT EXISTS idx_{c}_library ON {c}(library_id);

CREATE VIRTUAL TABLE IF NOT EXISTS {c}_fts USING fts5(
    content,
    content='{c}',
    content_rowid='rowid',
    tokenize='unicode61'
);

CREATE TRIGGER IF NOT EXISTS {c}_ai AFTER INSERT ON {c} BEGIN
    INSERT INTO {c}_fts(rowid, content) VALUES (NEW.rowid, NEW.content);
END;

CREATE TRIGGER IF NOT EXISTS {c}_ad AFTER DELETE ON {c} BEGIN
    INSERT INTO {c}_fts({c}_fts, rowid, content) VALUES ('delete', OLD.rowid, OLD.content);
END;

CREATE TRIGGER IF NOT EXISTS {c}_au AFTER UPDATE ON {c} BEGIN
    INSERT INTO {c}_fts({c}_fts, rowid, content) VALUES ('delete', OLD.rowid, OLD.content);
    INSERT INTO {c}_fts(rowid, content) VALUES (NEW.rowid, NEW.content);
END;
"""


#
# Classes:

class SQLiteSearchIndex(SQLiteDatabase, SearchIndexAdapter):
    """
    Search index kept in its own SQLite database, with an FTS5 table over document content.

    Read and write handles are alias names resolved to physical collections (tables) through
    ``aliases``; unmapped aliases resolve to ``item_fulltext``.
    """

    error_class = SearchIndexError

    def __init__(self, db_path: Union[str, Path], handles: Optional[IndexHandles] = None,
                 aliases: Optional[Dict[str, str]] = None, mget_batch_size: int = 100,
                 busy_timeout: float = 15):
        SearchIndexAdapter.__init__(self, handles=handles, mget_batch_size=mget_batch_size)
        aliases = aliases or {}
        self.read_collection = self._resolve_alias(self.handles.read, aliases)
        self.write_collection = self._resolve_alias(self.handles.write, aliases)
        logger.info(f"Initializing SQLite search index at {db_path} "
                    f"(read: {self.handles.read} -> {self.read_collection}, "
                    f"write: {self.handles.write} -> {self.write_collection})")
        SQLiteDatabase.__init__(self, db_path, busy_timeout=busy_timeout)

    @staticmethod
    def _resolve_alias(alias: str, aliases: Dict[str, str]) -> str:
        collection = aliases.get(alias, DEFAULT_COLLECTION)
        if not _COLLECTION_NAME_RE.match(collection):
            raise FullTextConfigurationError(f"Invalid index collection name '{collection}' for alias '{alias}'",
                                             config_key=alias)
        return collection

    def _initialize_schema(self):
        conn = self.get_connection()
        for collection in {self.read_collection, self.write_collection}:
            conn.executescript(_COLLECTION_SCHEMA.format(c=collection))

    # --- Writes ---
    def write(self, document: IndexDocument) -> None:
        c = self.write_collection
        columns = ["doc_id", "library_id", "content", "version", "timestamp", *STATS_COLUMNS, "language"]
        params = [
            document.id,
            document.library_id,
            document.content,
            document.version,
            format_index_timestamp(document.timestamp) if document.timestamp else None,
            *[getattr(document.stats, column) for column in STATS_COLUMNS],
            document.language,
        ]
        updates = ", ".join(f"{column} = excluded.{column}" for column in columns[1:])
        query = (f"INSERT INTO {c} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in params)}) "
                 f"ON CONFLICT(doc_id) DO UPDATE SET {updates} WHERE excluded.version > {c}.version")
        cursor = self.execute_query(query, params)
        if cursor.rowcount == 0:
            row = self.execute_query(f"SELECT version FROM {c} WHERE doc_id = ?", (document.id,)).fetchone()
            current = row['version'] if row else None
            raise IndexConflictError(
                f"Index already holds version {current} of {document.id}; rejected version {document.version}",
                doc_id=document.id, version=document.version, current_version=current)
        logger.debug(f"Indexed {document.id} at version {document.version} in {c}")

    def delete(self, doc_id: str) -> None:
        self.execute_query(f"DELETE FROM {self.write_collection} WHERE doc_id = ?", (doc_id,))

    def delete_by_library(self, library_id: int) -> None:
        cursor = self.execute_query(f"DELETE FROM {self.write_collection} WHERE library_id = ?", (library_id,))
        logger.debug(f"Deleted {cursor.rowcount} index documents for library {library_id}")

    # --- Reads ---
    def _document_from_row(self, row: sqlite3.Row) -> IndexDocument:
        library_id, key = split_document_id(row['doc_id'])
        return IndexDocument(
            library_id=library_id,
            key=key,
            content=row['content'],
            version=row['version'],
            timestamp=parse_timestamp(row['timestamp']),
            stats=FullTextStats.from_mapping({column: row[column] for column in STATS_COLUMNS}),
            language=row['language'],
        )

    def get(self, doc_id: str) -> Optional[IndexDocument]:
        row = self.execute_query(f"SELECT * FROM {self.read_collection} WHERE doc_id = ?", (doc_id,)).fetchone()
        return self._document_from_row(row) if row else None

    def _multi_get_batch(self, doc_ids: List[str]) -> List[Optional[IndexDocument]]:
        if not doc_ids:
            return []
        rows = self.execute_query(
            f"SELECT * FROM {self.read_collection} WHERE doc_id IN ({', '.join('?' for _ in doc_ids)})",
            doc_ids).fetchall()
        found = {row['doc_id']: self._document_from_row(row) for row in rows}
        return [found.get(doc_id) for doc_id in doc_ids]

    def search_phrase(self, library_id: int, phrase: str, limit: int = 1000) -> List[str]:
        # A phrase without any token can't match anything, and FTS5 rejects an empty phrase
        if not re.search(r'\w', phrase):
            return []
        c = self.read_collection
        match_expr = '"' + phrase.replace('"', '') + '"'
        rows = self.execute_query(
            f"""
            SELECT d.doc_id FROM {c}_fts
            JOIN {c} d ON d.rowid = {c}_fts.rowid
            WHERE {c}_fts MATCH ? AND d.library_id = ?
            ORDER BY {c}_fts.rank
            LIMIT ?
            """,
            (match_expr, library_id, limit)).fetchall()
        return [row['doc_id'] for row in rows]

    def close(self) -> None:
        self.close_connection()

#
# End of sqlite_index.py
#######################################################################################################################
