# conftest.py
# Description: Shared fixtures for the full-text tests
#
# Imports
from typing import List
#
# Third-Party Imports
import pytest
from loguru import logger
#
# Local Imports
from fulltext_Server_API.app.core.DB_Management.FullText_DB import FullTextDB
from fulltext_Server_API.app.core.FullText.query_engine import QueryEngine
from fulltext_Server_API.app.core.FullText.reconciliation import ReconciliationResolver
from fulltext_Server_API.app.core.FullText.service import FullTextService
from fulltext_Server_API.app.core.FullText.sqlite_index import SQLiteSearchIndex
from fulltext_Server_API.app.core.FullText.sync_coordinator import SyncCoordinator
from fulltext_test_utils import FlakyIndex
#
#######################################################################################################################
#
# Fixtures:

@pytest.fixture(autouse=True)
def clean_fulltext_env(monkeypatch):
    for name in ("FULLTEXT_CONFIG", "FULLTEXT_DB_PATH", "FULLTEXT_INDEX_BACKEND", "FULLTEXT_INDEX_DB_PATH",
                 "FULLTEXT_ES_HOSTS", "FULLTEXT_INDEX_READ_ALIAS", "FULLTEXT_INDEX_WRITE_ALIAS",
                 "FULLTEXT_LOG_LEVEL", "FULLTEXT_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def primary_db(tmp_path):
    db = FullTextDB(tmp_path / "fulltext.db")
    yield db
    db.close_connection()


@pytest.fixture
def search_index(tmp_path):
    index = SQLiteSearchIndex(tmp_path / "fulltext_index.db")
    yield index
    index.close()


@pytest.fixture
def flaky_index(search_index):
    return FlakyIndex(search_index)


@pytest.fixture
def coordinator(primary_db, search_index):
    return SyncCoordinator(primary_db, search_index)


@pytest.fixture
def flaky_coordinator(primary_db, flaky_index):
    return SyncCoordinator(primary_db, flaky_index)


@pytest.fixture
def resolver(primary_db, search_index):
    return ReconciliationResolver(primary_db, search_index)


@pytest.fixture
def query_engine(primary_db, search_index):
    return QueryEngine(search_index, primary_db)


@pytest.fixture
def service(primary_db, search_index):
    return FullTextService(primary_db, search_index)


@pytest.fixture
def loguru_messages():
    """Collects loguru messages at INFO and above emitted during a test."""
    messages: List[str] = []
    handler_id = logger.add(lambda message: messages.append(str(message)), level="INFO", format="{level} {message}")
    yield messages
    logger.remove(handler_id)
