# reconciliation.py
# Description: Bulk "changed since" reads that detect and repair primary-store/index divergence
#
# Imports
from datetime import datetime
from typing import Dict, Iterable, Union
#
# Third-Party Libraries
from loguru import logger
#
# Local Imports
from fulltext_Server_API.app.core.DB_Management.FullText_DB import FullTextDB
from fulltext_Server_API.app.core.FullText.exceptions import ConsistencyViolationError, IndexConflictError
from fulltext_Server_API.app.core.FullText.models import FullTextItemData, make_document_id
from fulltext_Server_API.app.core.FullText.search_index import SearchIndexAdapter
#
########################################################################################################################
#
# Classes:

class ReconciliationResolver:
    """
    Serves bulk reads for clients that sync by wall-clock time.

    Candidates come from the primary store; their data comes from the index, which carries the
    authoritative version. Candidates the index has lost are served from the primary store and
    written back into the index on the way out. That write-back is best effort and never fails
    the read.
    """

    def __init__(self, db: FullTextDB, index: SearchIndexAdapter):
        self.db = db
        self.index = index

    def get_newer_in_library_by_time(self, library_id: int, timestamp: Union[datetime, int, float],
                                     keys: Iterable[str] = ()) -> Dict[str, FullTextItemData]:
        """
        Returns ``{key: item data}`` for every record of the library changed at or after
        ``timestamp`` plus the explicitly requested ``keys``.

        Raises:
            ConsistencyViolationError: A candidate vanished from the primary store, or the index
                answered for a different number of documents than requested.
            SearchIndexError / PrimaryStoreError: Store failures.
        """
        candidates = self.db.query_keys_changed_since(library_id, timestamp, keys)
        if not candidates:
            return {}

        doc_ids = [make_document_id(lib_id, key) for lib_id, key in candidates]
        documents = self.index.multi_get(doc_ids)
        if len(documents) != len(candidates):
            raise ConsistencyViolationError(
                f"Primary store and index do not match ({len(candidates)} candidates, {len(documents)} documents)",
                library_id=library_id)

        data: Dict[str, FullTextItemData] = {}
        healed = 0
        for (lib_id, key), document in zip(candidates, documents):
            if document is not None:
                data[key] = document.to_item_data()
                continue

            logger.warning(f"Item {lib_id}/{key} not found in search index -- using primary store")
            record = self.db.fetch(lib_id, key)
            if record is None:
                raise ConsistencyViolationError(f"Item {lib_id}/{key} not found in primary store",
                                                library_id=lib_id, key=key)
            data[key] = record.to_item_data()
            if self._heal(record):
                healed += 1

        logger.debug(f"Reconciled {len(data)} items for library {library_id} ({healed} re-indexed)")
        return data

    def _heal(self, record) -> bool:
        doc_id = make_document_id(record.library_id, record.key)
        try:
            self.index.write(record.to_index_document())
            return True
        except IndexConflictError as e:
            logger.info(f"Skipped re-indexing {doc_id}; the index already has a newer version: {e}")
        except Exception as e:
            logger.warning(f"Re-indexing {doc_id} from primary store failed: {e}")
        return False

#
# End of reconciliation.py
#######################################################################################################################
