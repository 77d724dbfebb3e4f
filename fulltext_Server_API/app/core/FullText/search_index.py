# search_index.py
# Description: Interface to the externally-versioned full-text search index
#
# Imports
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence
#
# Local Imports
from fulltext_Server_API.app.core.FullText.models import IndexDocument
#
########################################################################################################################
#
# Classes:

@dataclass(frozen=True)
class IndexHandles:
    """
    Names of the read and write handles (aliases) for the full-text collection.

    Both usually address the same logical collection; during an online reindex the write
    handle can be pointed at a new collection while reads keep using the old one.
    """
    read: str = "item_fulltext_index_read"
    write: str = "item_fulltext_index_write"


class SearchIndexAdapter(ABC):
    """
    Abstract client for the search index.

    The index is eventually consistent and externally versioned: the writer supplies each
    document's version and the index rejects writes that are not strictly newer than what it
    holds. It is authoritative only for phrase search.
    """

    def __init__(self, handles: Optional[IndexHandles] = None, mget_batch_size: int = 100):
        self.handles = handles or IndexHandles()
        if mget_batch_size < 1:
            raise ValueError("mget_batch_size must be positive")
        self.mget_batch_size = mget_batch_size

    @abstractmethod
    def write(self, document: IndexDocument) -> None:
        """
        Stores ``document`` if no document exists for its id or the stored version is strictly
        lower. Otherwise raises ``IndexConflictError`` and leaves the stored document untouched.
        """
        pass

    @abstractmethod
    def get(self, doc_id: str) -> Optional[IndexDocument]:
        """Returns the document, or None if the index has none for ``doc_id``."""
        pass

    def multi_get(self, doc_ids: Sequence[str]) -> List[Optional[IndexDocument]]:
        """
        Fetches many documents, in batches. The result has the same length and order as
        ``doc_ids``, with None for ids the index does not hold.
        """
        results: List[Optional[IndexDocument]] = []
        for start in range(0, len(doc_ids), self.mget_batch_size):
            batch = list(doc_ids[start:start + self.mget_batch_size])
            results.extend(self._multi_get_batch(batch))
        return results

    @abstractmethod
    def _multi_get_batch(self, doc_ids: List[str]) -> List[Optional[IndexDocument]]:
        pass

    @abstractmethod
    def delete(self, doc_id: str) -> None:
        """Deletes a document. Deleting an absent document is not an error."""
        pass

    @abstractmethod
    def delete_by_library(self, library_id: int) -> None:
        pass

    @abstractmethod
    def search_phrase(self, library_id: int, phrase: str, limit: int = 1000) -> List[str]:
        """
        Returns ids of documents in ``library_id`` whose content contains ``phrase`` as a
        contiguous sequence, in the index's relevance order.
        """
        pass

    def close(self) -> None:
        pass

#
# End of search_index.py
#######################################################################################################################
