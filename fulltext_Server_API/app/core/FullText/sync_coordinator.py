# sync_coordinator.py
# Description: Orchestrates full-text writes and deletes across the primary store and the search index
#
# Imports
import sqlite3
from typing import Any, Mapping, Optional
#
# Third-Party Libraries
from loguru import logger
#
# Local Imports
from fulltext_Server_API.app.core.DB_Management.FullText_DB import FullTextDB, VersionAllocator
from fulltext_Server_API.app.core.FullText.exceptions import (
    FullTextStoreError,
    FullTextWriteError,
    IndexConflictError,
    InvalidInputError,
)
from fulltext_Server_API.app.core.FullText.models import (
    FullTextRecord,
    FullTextStats,
    Item,
    make_document_id,
    utc_now,
)
from fulltext_Server_API.app.core.FullText.search_index import SearchIndexAdapter
#
########################################################################################################################
#
# Classes:

class SyncCoordinator:
    """
    Keeps the primary store and the search index in step for writes and deletes.

    Every operation stages its primary-store change inside a transaction, performs the index
    call, and only then commits. If the index call fails the transaction is rolled back, so
    neither store changes. Versions are allocated under the same transaction lock, so they
    follow commit order. A write whose version the index already holds from an attempt that
    never committed is re-staged once above the indexed version.

    The one window left open is a failed commit after a successful index call: the index is then
    ahead of the primary store until a reconciling read, a re-index or the next write of the key
    repairs it. Failed calls are not retried here; callers own retry policy.
    """

    def __init__(self, db: FullTextDB, index: SearchIndexAdapter, allocator: Optional[VersionAllocator] = None):
        if not isinstance(db, FullTextDB):
            raise TypeError("db must be a FullTextDB instance")
        if not isinstance(index, SearchIndexAdapter):
            raise TypeError("index must be a SearchIndexAdapter instance")
        self.db = db
        self.index = index
        self.allocator = allocator or VersionAllocator(db)

    def index_item(self, item: Item, content: str, stats: Optional[Mapping[str, Any]] = None) -> FullTextRecord:
        """
        Stores ``content`` as the full text of an attachment item under a newly allocated library
        version and indexes it.

        Args:
            item: The attachment the text was extracted from.
            content: The extracted text.
            stats: Optional ``indexedChars``/``totalChars``/``indexedPages``/``totalPages`` counts.

        Returns:
            The committed record.

        Raises:
            InvalidInputError: ``item`` is not an attachment.
            FullTextWriteError: Either store failed; nothing was committed.
        """
        if not item.is_attachment:
            raise InvalidInputError("Full-text content can only be added for attachments",
                                    operation="index_item",
                                    context={'library_id': item.library_id, 'key': item.key,
                                             'item_type': item.item_type})

        doc_id = make_document_id(item.library_id, item.key)
        try:
            with self.db.transaction() as conn:
                try:
                    record = self._stage_and_write(conn, item, content, stats)
                except IndexConflictError as e:
                    # The index kept a version whose primary commit was lost; move past it once
                    floor = self._indexed_version(e)
                    logger.warning(f"Index holds {doc_id} at version {floor}, ahead of the primary store; "
                                   f"re-staging the write above it")
                    record = self._stage_and_write(conn, item, content, stats, floor=floor)
        except IndexConflictError as e:
            logger.warning(f"Index holds a newer version of {doc_id} than this write; write rolled back: {e}")
            raise FullTextWriteError(f"Full-text write for {doc_id} conflicted with the index",
                                     operation="index_item", context={'doc_id': doc_id},
                                     original_error=e) from e
        except FullTextStoreError as e:
            logger.error(f"Full-text write for {doc_id} failed, nothing committed: {e}")
            raise FullTextWriteError(f"Full-text write for {doc_id} failed", operation="index_item",
                                     context={'doc_id': doc_id}, original_error=e) from e

        logger.info(f"Indexed full-text for {doc_id} at version {record.version} ({len(content)} chars)")
        return record

    def _stage_and_write(self, conn: sqlite3.Connection, item: Item, content: str,
                         stats: Optional[Mapping[str, Any]], floor: int = 0) -> FullTextRecord:
        record = FullTextRecord(
            library_id=item.library_id,
            key=item.key,
            content=content,
            version=self.allocator.next_version(conn, item.library_id, floor=floor),
            timestamp=utc_now(),
            stats=FullTextStats.from_mapping(stats),
        )
        self.db.upsert(record, conn=conn)
        self.index.write(record.to_index_document())
        return record

    def _indexed_version(self, conflict: IndexConflictError) -> int:
        current = conflict.context.get('current_version')
        if current is None:
            indexed = self.index.get(conflict.context['doc_id'])
            current = indexed.version if indexed else conflict.context.get('version', 0)
        return current

    def delete_item_content(self, item: Item) -> bool:
        """
        Removes an item's full text from both stores. Both deletions always run; an index
        failure rolls back the primary deletion.

        Returns:
            True if the primary store held a row for the item.
        """
        doc_id = make_document_id(item.library_id, item.key)
        try:
            with self.db.transaction() as conn:
                existed = self.db.delete(item.library_id, item.key, conn=conn)
                self.index.delete(doc_id)
        except FullTextStoreError as e:
            logger.error(f"Full-text delete for {doc_id} failed, nothing committed: {e}")
            raise FullTextWriteError(f"Full-text delete for {doc_id} failed", operation="delete_item_content",
                                     context={'doc_id': doc_id}, original_error=e) from e
        logger.info(f"Deleted full-text for {doc_id} (primary row existed: {existed})")
        return existed

    def delete_by_library(self, library_id: int) -> int:
        """
        Removes all full text of a library from both stores.

        Returns:
            The number of primary-store rows deleted.
        """
        try:
            with self.db.transaction() as conn:
                deleted = self.db.delete_all(library_id, conn=conn)
                self.index.delete_by_library(library_id)
        except FullTextStoreError as e:
            logger.error(f"Full-text delete for library {library_id} failed, nothing committed: {e}")
            raise FullTextWriteError(f"Full-text delete for library {library_id} failed",
                                     operation="delete_by_library", context={'library_id': library_id},
                                     original_error=e) from e
        logger.info(f"Deleted full-text of library {library_id} ({deleted} rows)")
        return deleted

    def reindex_library(self, library_id: int) -> int:
        """
        Pushes every primary-store record of a library into the index's write handle with its
        existing version. Documents the index already holds at the same or a newer version are
        skipped. Used to rebuild a collection behind a new write alias or after divergence.

        Returns:
            The number of documents written.
        """
        written = 0
        skipped = 0
        for record in self.db.iter_library(library_id):
            try:
                self.index.write(record.to_index_document())
                written += 1
            except IndexConflictError as e:
                logger.debug(f"Re-index skipped {e.context.get('doc_id')}: {e}")
                skipped += 1
        logger.info(f"Re-indexed library {library_id}: {written} written, {skipped} already current")
        return written

#
# End of sync_coordinator.py
#######################################################################################################################
