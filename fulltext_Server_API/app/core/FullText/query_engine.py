# query_engine.py
# Description: Library-scoped phrase search and single-item full-text lookups
#
# Imports
from typing import Dict, List, Optional
#
# Third-Party Libraries
from loguru import logger
#
# Local Imports
from fulltext_Server_API.app.core.DB_Management.FullText_DB import FullTextDB
from fulltext_Server_API.app.core.FullText.models import FullTextItemData, make_document_id, split_document_id
from fulltext_Server_API.app.core.FullText.search_index import SearchIndexAdapter
#
########################################################################################################################
#
# Classes:

class QueryEngine:
    def __init__(self, index: SearchIndexAdapter, db: FullTextDB, max_results: int = 1000):
        self.index = index
        self.db = db
        self.max_results = max_results

    def search_in_library(self, library_id: int, text: str) -> List[str]:
        """
        Returns the keys of items in ``library_id`` whose full text contains ``text`` as a phrase,
        in the index's relevance order.

        Double quotes are stripped and the whole input is searched as one literal phrase; no query
        syntax is exposed. No matches gives an empty list; index failures raise ``SearchIndexError``.
        """
        phrase = text.replace('"', '').strip()
        if not phrase:
            return []
        doc_ids = self.index.search_phrase(library_id, phrase, limit=self.max_results)
        keys = []
        for doc_id in doc_ids:
            doc_library_id, key = split_document_id(doc_id)
            if doc_library_id != library_id:
                logger.error(f"Phrase search in library {library_id} returned foreign document {doc_id}; dropping it")
                continue
            keys.append(key)
        logger.debug(f"Phrase search in library {library_id} matched {len(keys)} items")
        return keys

    def get_item_data(self, library_id: int, key: str) -> Optional[FullTextItemData]:
        """
        Reads an item's full text straight from the index by id, so it is visible as soon as
        the index has stored it. Returns None if the index has no document.
        """
        document = self.index.get(make_document_id(library_id, key))
        return document.to_item_data() if document else None

    def get_newer_in_library(self, library_id: int, version: int) -> Dict[str, int]:
        """Returns ``{key: version}`` for the library's full-text records newer than ``version``."""
        return self.db.query_versions_above(library_id, version)

#
# End of query_engine.py
#######################################################################################################################
