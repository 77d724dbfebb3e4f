# service.py
# Description: Wires the full-text components together from configuration
#
# Imports
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
#
# Third-Party Libraries
from elasticsearch import Elasticsearch
from loguru import logger
#
# Local Imports
from fulltext_Server_API.app.core.DB_Management.FullText_DB import FullTextDB
from fulltext_Server_API.app.core.FullText.config import FullTextConfig
from fulltext_Server_API.app.core.FullText.elasticsearch_index import ElasticsearchIndex
from fulltext_Server_API.app.core.FullText.logging_config import setup_logging
from fulltext_Server_API.app.core.FullText.models import FullTextItemData, FullTextRecord, Item
from fulltext_Server_API.app.core.FullText.query_engine import QueryEngine
from fulltext_Server_API.app.core.FullText.reconciliation import ReconciliationResolver
from fulltext_Server_API.app.core.FullText.search_index import SearchIndexAdapter
from fulltext_Server_API.app.core.FullText.sqlite_index import SQLiteSearchIndex
from fulltext_Server_API.app.core.FullText.sync_coordinator import SyncCoordinator
#
########################################################################################################################
#
# Classes:

class FullTextService:
    """
    Entry point for callers (API layer, import jobs). Holds one primary store and one search
    index and hands them to the coordinator, resolver and query engine.
    """

    def __init__(self, db: FullTextDB, index: SearchIndexAdapter, search_max_results: int = 1000):
        self.db = db
        self.index = index
        self.coordinator = SyncCoordinator(db, index)
        self.resolver = ReconciliationResolver(db, index)
        self.query_engine = QueryEngine(index, db, max_results=search_max_results)

    # --- Writes ---
    def index_item(self, item: Item, content: str, stats: Optional[Mapping[str, Any]] = None) -> FullTextRecord:
        return self.coordinator.index_item(item, content, stats)

    def delete_item_content(self, item: Item) -> bool:
        return self.coordinator.delete_item_content(item)

    def delete_by_library(self, library_id: int) -> int:
        return self.coordinator.delete_by_library(library_id)

    def reindex_library(self, library_id: int) -> int:
        return self.coordinator.reindex_library(library_id)

    # --- Reads ---
    def get_item_data(self, library_id: int, key: str) -> Optional[FullTextItemData]:
        return self.query_engine.get_item_data(library_id, key)

    def get_newer_in_library(self, library_id: int, version: int) -> Dict[str, int]:
        return self.query_engine.get_newer_in_library(library_id, version)

    def get_newer_in_library_by_time(self, library_id: int, timestamp: Union[datetime, int, float],
                                     keys: Iterable[str] = ()) -> Dict[str, FullTextItemData]:
        return self.resolver.get_newer_in_library_by_time(library_id, timestamp, keys)

    def search_in_library(self, library_id: int, text: str) -> List[str]:
        return self.query_engine.search_in_library(library_id, text)

    def close(self) -> None:
        self.index.close()
        self.db.close_connection()


def create_search_index(config: FullTextConfig) -> SearchIndexAdapter:
    index_config = config.index
    if index_config.backend == "elasticsearch":
        client = Elasticsearch(
            index_config.hosts,
            api_key=index_config.api_key,
            request_timeout=index_config.request_timeout,
        )
        logger.info(f"Using Elasticsearch search index at {', '.join(index_config.hosts)}")
        return ElasticsearchIndex(client, handles=index_config.handles,
                                  mget_batch_size=index_config.mget_batch_size)
    return SQLiteSearchIndex(
        index_config.db_path,
        handles=index_config.handles,
        aliases=index_config.aliases,
        mget_batch_size=index_config.mget_batch_size,
        busy_timeout=config.primary.busy_timeout,
    )


def create_fulltext_service(config: Optional[FullTextConfig] = None, configure_logging: bool = True) -> FullTextService:
    """
    Builds a wired service from ``config`` (or the TOML configuration). Unless
    ``configure_logging`` is False, loguru is set up from ``log_level`` and ``log_file`` first;
    applications that own their logging setup pass False.
    """
    config = config or FullTextConfig.from_toml()
    config.validate()
    if configure_logging:
        setup_logging(config.log_level, config.log_file)
    db = FullTextDB(config.primary.db_path, busy_timeout=config.primary.busy_timeout)
    index = create_search_index(config)
    return FullTextService(db, index, search_max_results=config.index.search_max_results)

#
# End of service.py
#######################################################################################################################
