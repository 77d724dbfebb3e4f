# Full-Text Module Exports
#
# Keeps attachment full text consistent between the primary store and the search index,
# and serves library-scoped phrase search.
# The wired service is in .service.

from .config import FullTextConfig
from .exceptions import (
    ConsistencyViolationError,
    FullTextConfigurationError,
    FullTextError,
    FullTextStoreError,
    FullTextWriteError,
    IndexConflictError,
    InvalidInputError,
    PrimaryStoreError,
    SearchIndexError,
)
from .models import FullTextItemData, FullTextRecord, FullTextStats, IndexDocument, Item
from .search_index import IndexHandles, SearchIndexAdapter

__all__ = [
    'FullTextConfig',
    'FullTextItemData',
    'FullTextRecord',
    'FullTextStats',
    'IndexDocument',
    'Item',
    'IndexHandles',
    'SearchIndexAdapter',
    'FullTextError',
    'InvalidInputError',
    'ConsistencyViolationError',
    'FullTextStoreError',
    'PrimaryStoreError',
    'SearchIndexError',
    'IndexConflictError',
    'FullTextWriteError',
    'FullTextConfigurationError',
]
