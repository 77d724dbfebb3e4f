# exceptions.py
# Description: Exception hierarchy for full-text synchronization and search
#
"""
Full-Text Exception Hierarchy
=============================

Exception Categories:
- FullTextError: Base exception for all full-text errors
- InvalidInputError: Caller error (e.g. indexing a non-attachment item), never retried
- ConsistencyViolationError: The primary store contradicts itself during reconciliation
- FullTextStoreError: Transport/protocol failure from either store
    - PrimaryStoreError: SQLite primary store failures
    - SearchIndexError: Search index failures
        - IndexConflictError: Write rejected by the index's external-version check (non-fatal)
- FullTextWriteError: Generic write failure surfaced by the sync coordinator
- FullTextConfigurationError: Invalid configuration

"Not found" is not an exception: single-item lookups return ``None``.
"""

from typing import Any, Dict, Optional


class FullTextError(Exception):
    """
    Base exception for all full-text errors.

    Attributes:
        operation: The operation that failed (e.g. "index_item", "multi_get")
        context: Additional context about the error (library IDs, keys, versions)
        original_error: The underlying exception, if any
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.operation = operation
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        parts = [super().__str__()]

        if self.operation:
            parts.append(f"Operation: {self.operation}")

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"Context: {context_str}")

        if self.original_error:
            parts.append(f"Caused by: {type(self.original_error).__name__}: {self.original_error}")

        return " | ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "message": self.args[0] if self.args else "",
            "operation": self.operation,
            "context": self.context,
            "original_error": str(self.original_error) if self.original_error else None
        }


class InvalidInputError(FullTextError, ValueError):
    """Raised when an operation is invoked with input it can never accept."""
    pass


class ConsistencyViolationError(FullTextError):
    """
    A key reported as changed by the primary store could not be read back from it, or the
    index returned a different number of documents than were requested. Fails the whole
    batch; it signals corruption rather than a transient condition.
    """

    def __init__(self, message: str, library_id: Optional[int] = None, key: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if library_id is not None:
            context['library_id'] = library_id
        if key is not None:
            context['key'] = key
        super().__init__(message, operation=kwargs.pop('operation', "reconcile"), context=context, **kwargs)


class FullTextStoreError(FullTextError):
    """Transport or protocol failure from one of the stores."""
    pass


class PrimaryStoreError(FullTextStoreError):
    """Failure in the SQLite primary store."""
    pass


class SearchIndexError(FullTextStoreError):
    """Failure in the search index."""

    def __init__(self, message: str, doc_id: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if doc_id is not None:
            context['doc_id'] = doc_id
        super().__init__(message, context=context, **kwargs)


class IndexConflictError(SearchIndexError):
    """
    The index rejected a write because it already holds the same or a newer version.

    Not a data-correctness failure: a newer write has already won.
    """

    def __init__(self, message: str, doc_id: Optional[str] = None, version: Optional[int] = None,
                 current_version: Optional[int] = None, **kwargs):
        context = kwargs.pop('context', {})
        if version is not None:
            context['version'] = version
        if current_version is not None:
            context['current_version'] = current_version
        super().__init__(message, doc_id=doc_id, operation=kwargs.pop('operation', "write"),
                         context=context, **kwargs)
        self.version = version
        self.current_version = current_version


class FullTextWriteError(FullTextError):
    """A coordinated write or delete did not complete; nothing was committed unless stated otherwise."""
    pass


class FullTextConfigurationError(FullTextError):
    """Invalid or missing configuration."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if config_key:
            context['config_key'] = config_key
        super().__init__(message, operation="configuration", context=context, **kwargs)

#
# End of exceptions.py
#######################################################################################################################
