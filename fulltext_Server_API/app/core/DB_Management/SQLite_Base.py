# SQLite_Base.py
# Description: Thread-local SQLite connection handling shared by the full-text primary store and the SQLite search index.
#
# Imports
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
#
# Third-Party Libraries
from loguru import logger
#
# Local Imports
from fulltext_Server_API.app.core.FullText.exceptions import FullTextStoreError
#
########################################################################################################################
#
# Classes:


class SQLiteDatabase:
    """
    Base class for the SQLite-backed stores.

    Each thread gets its own connection (stored in a ``threading.local``). File databases run
    in WAL mode. Subclasses provide ``_initialize_schema`` and may override ``error_class`` so
    that SQLite failures surface as their own store error type.
    """

    error_class = FullTextStoreError

    def __init__(self, db_path: Union[str, Path], busy_timeout: float = 15):
        if isinstance(db_path, Path):
            self.is_memory_db = False
            self.db_path = db_path.resolve()
        else:
            self.is_memory_db = (db_path == ':memory:')
            self.db_path = Path(db_path).resolve() if not self.is_memory_db else Path(":memory:")
        self.db_path_str = str(self.db_path) if not self.is_memory_db else ':memory:'
        self.busy_timeout = busy_timeout

        if not self.is_memory_db:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise self.error_class(f"Failed to create database directory {self.db_path.parent}: {e}",
                                       operation="init") from e

        self._local = threading.local()
        try:
            self._initialize_schema()
            logger.debug(f"{type(self).__name__} initialized for {self.db_path_str}")
        except sqlite3.Error as e:
            logger.critical(f"FATAL: DB initialization failed for {self.db_path_str}: {e}")
            self.close_connection()
            raise self.error_class(f"Database initialization failed: {e}", operation="init",
                                   original_error=e) from e

    def _initialize_schema(self):
        raise NotImplementedError

    # --- Connection Management ---
    def _get_thread_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, 'conn', None)
        if conn:
            try:
                conn.execute("SELECT 1")
            except (sqlite3.ProgrammingError, sqlite3.OperationalError):
                logger.warning(f"Thread-local connection for {self.db_path_str} became unusable. Reopening.")
                try:
                    conn.close()
                except sqlite3.Error:
                    pass
                conn = None

        if not conn:
            try:
                # isolation_level=None: transactions are opened explicitly by TransactionContextManager
                conn = sqlite3.connect(
                    self.db_path_str,
                    check_same_thread=False,
                    timeout=self.busy_timeout,
                    isolation_level=None,
                )
                conn.row_factory = sqlite3.Row
                if not self.is_memory_db:
                    conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA foreign_keys = ON;")
                self._local.conn = conn
                logger.debug(f"Opened SQLite connection to {self.db_path_str} for thread {threading.get_ident()}")
            except sqlite3.Error as e:
                self._local.conn = None
                raise self.error_class(f"Failed to connect to database '{self.db_path_str}': {e}",
                                       operation="connect", original_error=e) from e
        return self._local.conn

    def get_connection(self) -> sqlite3.Connection:
        return self._get_thread_connection()

    def close_connection(self):
        conn = getattr(self._local, 'conn', None)
        if conn is None:
            return
        try:
            if conn.in_transaction:
                logger.warning(f"Connection to {self.db_path_str} closed inside an open transaction. Rolling back.")
                conn.rollback()
            conn.close()
            logger.debug(f"Closed connection for thread {threading.get_ident()} to {self.db_path_str}.")
        except sqlite3.Error as e:
            logger.warning(f"Error while closing SQLite connection for {self.db_path_str}: {e}")
        finally:
            self._local.conn = None

    # --- Query Execution ---
    def execute_query(self, query: str, params: Optional[Union[tuple, List[Any], Dict[str, Any]]] = None, *,
                      conn: Optional[sqlite3.Connection] = None, script: bool = False) -> sqlite3.Cursor:
        conn = conn or self.get_connection()
        try:
            cursor = conn.cursor()
            logger.trace(f"Executing SQL (script={script}): {query[:300]}... Params: {str(params)[:200]}...")
            if script:
                cursor.executescript(query)
            else:
                cursor.execute(query, params or ())
            return cursor
        except sqlite3.Error as e:
            logger.error(f"Query execution failed: {query[:300]}... Error: {e}")
            raise self.error_class(f"Query execution failed: {e}", operation="query", original_error=e) from e

    # --- Transaction Context ---
    def transaction(self, mode: str = "IMMEDIATE") -> 'TransactionContextManager':
        return TransactionContextManager(self, mode=mode)


class TransactionContextManager:
    """
    ``with db.transaction() as conn:`` helper.

    Only the outermost block issues BEGIN/COMMIT/ROLLBACK; nested blocks join it. ``IMMEDIATE``
    takes the database write lock at BEGIN, so concurrent writers queue up for the busy timeout.
    """

    def __init__(self, db_instance: SQLiteDatabase, mode: str = "IMMEDIATE"):
        self.db = db_instance
        self.mode = mode
        self.conn: Optional[sqlite3.Connection] = None
        self.is_outermost_transaction = False

    def __enter__(self) -> sqlite3.Connection:
        self.conn = self.db.get_connection()
        if not self.conn.in_transaction:
            try:
                self.conn.execute(f"BEGIN {self.mode}")
            except sqlite3.Error as e:
                raise self.db.error_class(f"Could not begin transaction: {e}", operation="begin",
                                          original_error=e) from e
            self.is_outermost_transaction = True
            logger.trace(f"Transaction started (outermost, {self.mode}) on thread {threading.get_ident()}.")
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.is_outermost_transaction:
            return False

        if exc_type:
            logger.debug(f"Transaction failed, rolling back on thread {threading.get_ident()}: "
                         f"{exc_type.__name__} - {exc_val}")
            try:
                self.conn.rollback()
            except sqlite3.Error as rb_err:
                logger.critical(f"Rollback FAILED on thread {threading.get_ident()}: {rb_err}")
            return False

        try:
            self.conn.commit()
            logger.trace(f"Transaction committed on thread {threading.get_ident()}.")
        except sqlite3.Error as commit_err:
            logger.error(f"Commit FAILED on thread {threading.get_ident()}, attempting rollback: {commit_err}")
            try:
                self.conn.rollback()
            except sqlite3.Error as rb_err:
                logger.critical(f"Rollback after failed commit also FAILED: {rb_err}")
            raise self.db.error_class(f"Commit failed: {commit_err}", operation="commit",
                                      original_error=commit_err) from commit_err
        return False

#
# End of SQLite_Base.py
#######################################################################################################################
