# elasticsearch_index.py
# Description: Elasticsearch 8 implementation of the externally-versioned search index
#
# Imports
from typing import Any, Dict, List, Optional
#
# Third-Party Libraries
from elasticsearch import ApiError, ConflictError, Elasticsearch, NotFoundError, TransportError
from loguru import logger
#
# Local Imports
from fulltext_Server_API.app.core.FullText.exceptions import IndexConflictError, SearchIndexError
from fulltext_Server_API.app.core.FullText.models import IndexDocument, split_document_id
from fulltext_Server_API.app.core.FullText.search_index import IndexHandles, SearchIndexAdapter
#
########################################################################################################################
#
# Classes:

class ElasticsearchIndex(SearchIndexAdapter):
    """
    Search index backed by an Elasticsearch cluster.

    ``handles.read`` and ``handles.write`` are index aliases. Documents are routed by library
    so a library's documents share a shard; versions use ``version_type=external``.
    """

    def __init__(self, client: Elasticsearch, handles: Optional[IndexHandles] = None, mget_batch_size: int = 100):
        super().__init__(handles=handles, mget_batch_size=mget_batch_size)
        self.client = client

    @staticmethod
    def _body(response) -> Dict[str, Any]:
        # The client returns ObjectApiResponse wrappers; the plain dict lives in .body
        return response.body if hasattr(response, "body") else response

    @staticmethod
    def _routing(doc_id: str) -> str:
        return str(split_document_id(doc_id)[0])

    def write(self, document: IndexDocument) -> None:
        try:
            self.client.index(
                index=self.handles.write,
                id=document.id,
                document=document.to_source(),
                version=document.version,
                version_type="external",
                routing=str(document.library_id),
            )
        except ConflictError as e:
            raise IndexConflictError(
                f"Index rejected version {document.version} of {document.id}: a newer version is stored",
                doc_id=document.id, version=document.version, original_error=e) from e
        except (ApiError, TransportError) as e:
            raise SearchIndexError(f"Failed to index {document.id}", doc_id=document.id, operation="write",
                                   original_error=e) from e
        logger.debug(f"Indexed {document.id} at version {document.version} in {self.handles.write}")

    def get(self, doc_id: str) -> Optional[IndexDocument]:
        try:
            response = self.client.get(index=self.handles.read, id=doc_id, routing=self._routing(doc_id))
        except NotFoundError:
            return None
        except (ApiError, TransportError) as e:
            raise SearchIndexError(f"Failed to get {doc_id}", doc_id=doc_id, operation="get",
                                   original_error=e) from e
        return IndexDocument.from_source(doc_id, self._body(response)["_source"])

    def _multi_get_batch(self, doc_ids: List[str]) -> List[Optional[IndexDocument]]:
        if not doc_ids:
            return []
        docs = [{"_id": doc_id, "routing": self._routing(doc_id)} for doc_id in doc_ids]
        try:
            response = self.client.mget(index=self.handles.read, docs=docs)
        except (ApiError, TransportError) as e:
            raise SearchIndexError(f"mget of {len(doc_ids)} documents failed", operation="multi_get",
                                   original_error=e) from e

        response_docs = self._body(response).get("docs")
        if response_docs is None:
            raise SearchIndexError("Invalid response from mget: no 'docs'", operation="multi_get")
        if len(response_docs) != len(doc_ids):
            raise SearchIndexError(
                f"mget returned {len(response_docs)} documents for {len(doc_ids)} ids", operation="multi_get")

        results: List[Optional[IndexDocument]] = []
        for doc_id, doc in zip(doc_ids, response_docs):
            if doc.get("error"):
                raise SearchIndexError(f"mget failed for {doc_id}: {doc['error']}", doc_id=doc_id,
                                       operation="multi_get")
            if not doc.get("found"):
                results.append(None)
                continue
            source = doc.get("_source")
            if not source:
                raise SearchIndexError(f"_source not found in index for {doc_id}", doc_id=doc_id,
                                       operation="multi_get")
            results.append(IndexDocument.from_source(doc_id, source))
        return results

    def delete(self, doc_id: str) -> None:
        try:
            self.client.delete(index=self.handles.write, id=doc_id, routing=self._routing(doc_id))
        except NotFoundError:
            logger.debug(f"{doc_id} was not in the index; nothing to delete")
        except (ApiError, TransportError) as e:
            raise SearchIndexError(f"Failed to delete {doc_id}", doc_id=doc_id, operation="delete",
                                   original_error=e) from e

    def delete_by_library(self, library_id: int) -> None:
        try:
            response = self.client.delete_by_query(
                index=self.handles.write,
                query={"term": {"libraryID": library_id}},
                routing=str(library_id),
            )
        except (ApiError, TransportError) as e:
            raise SearchIndexError(f"Failed to delete documents of library {library_id}",
                                   operation="delete_by_library", context={'library_id': library_id},
                                   original_error=e) from e
        body = self._body(response)
        failures = body.get("failures") or []
        if failures:
            raise SearchIndexError(f"delete_by_query reported {len(failures)} failures for library {library_id}",
                                   operation="delete_by_library", context={'library_id': library_id})
        logger.debug(f"Deleted {body.get('deleted', 0)} index documents for library {library_id}")

    def search_phrase(self, library_id: int, phrase: str, limit: int = 1000) -> List[str]:
        query: Dict[str, Any] = {
            "bool": {
                "must": {"match_phrase": {"content": phrase}},
                "filter": {"term": {"libraryID": library_id}},
            }
        }
        try:
            response = self.client.search(
                index=self.handles.read,
                query=query,
                size=limit,
                source=False,
                routing=str(library_id),
            )
        except (ApiError, TransportError) as e:
            raise SearchIndexError(f"Phrase search failed in library {library_id}", operation="search_phrase",
                                   context={'library_id': library_id}, original_error=e) from e
        return [hit["_id"] for hit in self._body(response)["hits"]["hits"]]

    def close(self) -> None:
        self.client.close()

#
# End of elasticsearch_index.py
#######################################################################################################################
