# test_reconciliation.py
# Description: Tests for time-based bulk reads and index self-heal
#
# Imports
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
#
# Third-Party Imports
import pytest
#
# Local Imports
from fulltext_Server_API.app.core.DB_Management.FullText_DB import FullTextDB
from fulltext_Server_API.app.core.FullText.exceptions import (
    ConsistencyViolationError,
    IndexConflictError,
    SearchIndexError,
)
from fulltext_Server_API.app.core.FullText.models import FullTextItemData, IndexDocument
from fulltext_Server_API.app.core.FullText.reconciliation import ReconciliationResolver
from fulltext_Server_API.app.core.FullText.search_index import SearchIndexAdapter
from fulltext_test_utils import attachment, stage_primary_only
#
#######################################################################################################################

LONG_AGO = datetime(2000, 1, 1, tzinfo=timezone.utc)


def test_no_candidates_returns_empty_without_touching_index(primary_db):
    index = MagicMock(spec=SearchIndexAdapter)
    resolver = ReconciliationResolver(primary_db, index)

    assert resolver.get_newer_in_library_by_time(1, LONG_AGO) == {}
    index.multi_get.assert_not_called()


def test_indexed_items_are_served_from_index(coordinator, resolver):
    coordinator.index_item(attachment(1, "A"), "alpha", {'indexedChars': 5, 'totalChars': 5})
    coordinator.index_item(attachment(1, "B"), "beta")

    data = resolver.get_newer_in_library_by_time(1, LONG_AGO)

    assert set(data) == {"A", "B"}
    assert isinstance(data["A"], FullTextItemData)
    assert data["A"].content == "alpha"
    assert data["A"].version == 1
    assert data["A"].indexed_chars == 5
    assert data["B"].version == 2


def test_index_data_wins_over_primary_when_present(primary_db, search_index, resolver):
    record = stage_primary_only(primary_db, 1, "A", "plain text")
    search_index.write(record.to_index_document(language="en"))

    data = resolver.get_newer_in_library_by_time(1, LONG_AGO)

    assert data["A"].language == "en"


def test_missing_index_document_served_from_primary_and_healed(primary_db, search_index, resolver):
    stage_primary_only(primary_db, 1, "ABCD", "recovered text", {'indexedPages': 2, 'totalPages': 3})
    assert search_index.get("1/ABCD") is None

    data = resolver.get_newer_in_library_by_time(1, LONG_AGO)

    assert data["ABCD"].content == "recovered text"
    assert data["ABCD"].version == 1
    assert data["ABCD"].indexed_pages == 2
    assert data["ABCD"].total_pages == 3

    healed = search_index.get("1/ABCD")
    assert healed is not None
    assert healed.version == 1
    assert search_index.search_phrase(1, "recovered text") == ["1/ABCD"]


def test_missing_index_document_logs_warning(primary_db, resolver, loguru_messages):
    stage_primary_only(primary_db, 1, "ABCD", "text")
    resolver.get_newer_in_library_by_time(1, LONG_AGO)
    assert any("WARNING Item 1/ABCD not found in search index -- using primary store" in message
               for message in loguru_messages)


def test_heal_failure_never_fails_the_read(primary_db, flaky_index):
    stage_primary_only(primary_db, 1, "ABCD", "text")
    flaky_index.fail_writes = True
    resolver = ReconciliationResolver(primary_db, flaky_index)

    data = resolver.get_newer_in_library_by_time(1, LONG_AGO)

    assert data["ABCD"].content == "text"
    assert len(flaky_index.write_calls) == 1
    assert flaky_index.get("1/ABCD") is None


def test_heal_conflict_is_skipped(primary_db):
    record = stage_primary_only(primary_db, 1, "ABCD", "text")
    index = MagicMock(spec=SearchIndexAdapter)
    index.multi_get.return_value = [None]
    index.write.side_effect = IndexConflictError("newer version present", doc_id="1/ABCD", version=1,
                                                 current_version=2)

    data = ReconciliationResolver(primary_db, index).get_newer_in_library_by_time(1, LONG_AGO)

    assert data["ABCD"].version == record.version
    index.write.assert_called_once()


def test_only_changed_and_requested_keys_returned(primary_db, search_index, resolver):
    cutoff = datetime.now(timezone.utc) - timedelta(hours=1)
    old = stage_primary_only(primary_db, 1, "OLD", "old text")
    primary_db.execute_query("UPDATE fulltext_content SET timestamp = ? WHERE item_key = 'OLD'",
                             ((cutoff - timedelta(days=3)).strftime('%Y-%m-%d %H:%M:%S'),))
    stage_primary_only(primary_db, 1, "NEW", "new text")
    stage_primary_only(primary_db, 2, "NEW", "other library")

    assert set(resolver.get_newer_in_library_by_time(1, cutoff)) == {"NEW"}
    explicit = resolver.get_newer_in_library_by_time(1, cutoff, keys=["OLD"])
    assert set(explicit) == {"NEW", "OLD"}
    assert explicit["OLD"].version == old.version


def test_accepts_unix_timestamp(coordinator, resolver):
    coordinator.index_item(attachment(1, "A"), "alpha")
    assert set(resolver.get_newer_in_library_by_time(1, 0)) == {"A"}


def test_candidate_missing_from_both_stores_is_a_consistency_violation(search_index):
    db = MagicMock(spec=FullTextDB)
    db.query_keys_changed_since.return_value = [(1, "GHOST")]
    db.fetch.return_value = None

    with pytest.raises(ConsistencyViolationError) as exc_info:
        ReconciliationResolver(db, search_index).get_newer_in_library_by_time(1, LONG_AGO)

    assert exc_info.value.context == {'library_id': 1, 'key': "GHOST"}
    assert exc_info.value.operation == "reconcile"


def test_mget_length_mismatch_is_a_consistency_violation(primary_db):
    stage_primary_only(primary_db, 1, "A", "a")
    stage_primary_only(primary_db, 1, "B", "b")
    index = MagicMock(spec=SearchIndexAdapter)
    index.multi_get.return_value = [None]

    with pytest.raises(ConsistencyViolationError):
        ReconciliationResolver(primary_db, index).get_newer_in_library_by_time(1, LONG_AGO)


def test_index_read_failure_propagates(primary_db):
    stage_primary_only(primary_db, 1, "A", "a")
    index = MagicMock(spec=SearchIndexAdapter)
    index.multi_get.side_effect = SearchIndexError("cluster unavailable", operation="multi_get")

    with pytest.raises(SearchIndexError):
        ReconciliationResolver(primary_db, index).get_newer_in_library_by_time(1, LONG_AGO)


def test_mixed_batch_preserves_every_candidate(primary_db, search_index, resolver):
    for key in ("A", "B", "C", "D"):
        record = stage_primary_only(primary_db, 1, key, f"text {key}")
        if key in ("A", "C"):
            search_index.write(IndexDocument(library_id=1, key=key, content=f"indexed {key}",
                                             version=record.version))

    data = resolver.get_newer_in_library_by_time(1, LONG_AGO)

    assert data["A"].content == "indexed A"
    assert data["B"].content == "text B"
    assert data["C"].content == "indexed C"
    assert data["D"].content == "text D"
    assert search_index.get("1/B") is not None
    assert search_index.get("1/D") is not None
