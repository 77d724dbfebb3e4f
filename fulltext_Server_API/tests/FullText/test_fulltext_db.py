# test_fulltext_db.py
# Description: Tests for the full-text primary store and per-library version allocation
#
# Imports
from datetime import datetime, timedelta, timezone
#
# Third-Party Imports
import pytest
from hypothesis import HealthCheck, given, settings, strategies as st
#
# Local Imports
from fulltext_Server_API.app.core.DB_Management.FullText_DB import FullTextDB, VersionAllocator
from fulltext_Server_API.app.core.FullText.exceptions import PrimaryStoreError
from fulltext_Server_API.app.core.FullText.models import FullTextRecord, FullTextStats
from fulltext_test_utils import stage_primary_only
#
#######################################################################################################################
#
# Helpers

def make_record(library_id=1, key="ABCD", content="some text", version=1, timestamp=None, **stats):
    return FullTextRecord(
        library_id=library_id,
        key=key,
        content=content,
        version=version,
        timestamp=timestamp or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc),
        stats=FullTextStats(**stats),
    )


#
# Schema / lifecycle

def test_schema_created_on_fresh_file(tmp_path):
    db = FullTextDB(tmp_path / "nested" / "dir" / "fulltext.db")
    row = db.execute_query("SELECT version FROM db_schema_version WHERE schema_name = 'fulltext_schema'").fetchone()
    assert row['version'] == 1
    db.close_connection()


def test_reopen_existing_database_keeps_rows(tmp_path):
    path = tmp_path / "fulltext.db"
    db = FullTextDB(path)
    with db.transaction() as conn:
        db.upsert(make_record(), conn=conn)
    db.close_connection()

    reopened = FullTextDB(path)
    assert reopened.fetch(1, "ABCD").content == "some text"
    reopened.close_connection()


def test_memory_database_supported():
    db = FullTextDB(":memory:")
    assert db.is_memory_db
    db.upsert(make_record())
    assert db.fetch(1, "ABCD") is not None
    db.close_connection()


#
# upsert / fetch

def test_fetch_missing_returns_none(primary_db):
    assert primary_db.fetch(1, "NOPE") is None


def test_upsert_then_fetch_round_trips_all_fields(primary_db):
    record = make_record(content="The quick brown fox", version=7, indexed_pages=1, total_pages=1)
    primary_db.upsert(record)

    fetched = primary_db.fetch(1, "ABCD")
    assert fetched.content == "The quick brown fox"
    assert fetched.version == 7
    assert fetched.timestamp == record.timestamp
    assert fetched.stats == FullTextStats(indexed_chars=0, total_chars=0, indexed_pages=1, total_pages=1)


def test_upsert_replaces_rather_than_merges(primary_db):
    primary_db.upsert(make_record(content="old", version=1, indexed_chars=10, total_chars=20))
    primary_db.upsert(make_record(content="new", version=2))

    fetched = primary_db.fetch(1, "ABCD")
    assert fetched.content == "new"
    assert fetched.version == 2
    assert fetched.stats.indexed_chars == 0
    assert fetched.stats.total_chars == 0


def test_upsert_is_idempotent(primary_db):
    record = make_record()
    primary_db.upsert(record)
    primary_db.upsert(record)
    count = primary_db.execute_query("SELECT COUNT(*) AS n FROM fulltext_content").fetchone()['n']
    assert count == 1


def test_same_key_in_different_libraries_is_distinct(primary_db):
    primary_db.upsert(make_record(library_id=1, content="one"))
    primary_db.upsert(make_record(library_id=2, content="two"))
    assert primary_db.fetch(1, "ABCD").content == "one"
    assert primary_db.fetch(2, "ABCD").content == "two"


def test_null_stats_columns_read_as_zero(primary_db):
    primary_db.execute_query(
        "INSERT INTO fulltext_content (library_id, item_key, content, version, timestamp, indexed_chars) "
        "VALUES (1, 'NULLS', 'x', 1, '2024-01-01 00:00:00', NULL)")
    assert primary_db.fetch(1, "NULLS").stats == FullTextStats()


#
# Deletes

def test_delete_reports_whether_row_existed(primary_db):
    primary_db.upsert(make_record())
    assert primary_db.delete(1, "ABCD") is True
    assert primary_db.delete(1, "ABCD") is False
    assert primary_db.fetch(1, "ABCD") is None


def test_delete_all_only_touches_one_library(primary_db):
    primary_db.upsert(make_record(library_id=1, key="A"))
    primary_db.upsert(make_record(library_id=1, key="B"))
    primary_db.upsert(make_record(library_id=2, key="A"))

    assert primary_db.delete_all(1) == 2
    assert primary_db.fetch(1, "A") is None
    assert primary_db.fetch(2, "A") is not None


def test_rolled_back_transaction_leaves_no_row(primary_db):
    with pytest.raises(RuntimeError):
        with primary_db.transaction() as conn:
            primary_db.upsert(make_record(), conn=conn)
            raise RuntimeError("abort")
    assert primary_db.fetch(1, "ABCD") is None


#
# query_versions_above

def test_query_versions_above_is_strict(primary_db):
    for version, key in enumerate(["A", "B", "C"], start=1):
        primary_db.upsert(make_record(key=key, version=version))
    primary_db.upsert(make_record(library_id=2, key="Z", version=10))

    assert primary_db.query_versions_above(1, 1) == {"B": 2, "C": 3}
    assert primary_db.query_versions_above(1, 3) == {}
    assert primary_db.query_versions_above(1, 0) == {"A": 1, "B": 2, "C": 3}


@settings(max_examples=30, deadline=None, suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture])
@given(
    writes=st.lists(st.sampled_from(["A", "B", "C", "D", "E"]), min_size=1, max_size=15),
    threshold=st.integers(min_value=0, max_value=16),
)
def test_query_versions_above_matches_model(writes, threshold):
    db = FullTextDB(":memory:")
    expected = {}
    try:
        for key in writes:
            record = stage_primary_only(db, 1, key, f"content of {key}")
            expected[key] = record.version
        result = db.query_versions_above(1, threshold)
        assert result == {k: v for k, v in expected.items() if v > threshold}
        assert all(v > threshold for v in result.values())
    finally:
        db.close_connection()


#
# query_keys_changed_since

def test_keys_changed_since_uses_timestamp_boundary_inclusively(primary_db):
    base = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    primary_db.upsert(make_record(key="OLD", timestamp=base - timedelta(hours=1)))
    primary_db.upsert(make_record(key="EDGE", timestamp=base))
    primary_db.upsert(make_record(key="NEW", timestamp=base + timedelta(hours=1)))

    keys = {key for _, key in primary_db.query_keys_changed_since(1, base)}
    assert keys == {"EDGE", "NEW"}


def test_keys_changed_since_accepts_unix_timestamp(primary_db):
    base = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    primary_db.upsert(make_record(key="OLD", timestamp=base - timedelta(days=1)))
    primary_db.upsert(make_record(key="NEW", timestamp=base + timedelta(seconds=1)))

    assert primary_db.query_keys_changed_since(1, int(base.timestamp())) == [(1, "NEW")]


def test_keys_changed_since_unions_explicit_keys_without_duplicates(primary_db):
    base = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    primary_db.upsert(make_record(key="OLD", timestamp=base - timedelta(days=1)))
    primary_db.upsert(make_record(key="NEW", timestamp=base + timedelta(days=1)))

    pairs = primary_db.query_keys_changed_since(1, base, ["OLD", "NEW", "MISSING"])
    assert sorted(pairs) == [(1, "NEW"), (1, "OLD")]


def test_keys_changed_since_is_library_scoped(primary_db):
    base = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    primary_db.upsert(make_record(library_id=2, key="OTHER", timestamp=base + timedelta(days=1)))
    assert primary_db.query_keys_changed_since(1, base, ["OTHER"]) == []


#
# VersionAllocator

def test_allocator_requires_open_transaction(primary_db):
    allocator = VersionAllocator(primary_db)
    with pytest.raises(PrimaryStoreError):
        allocator.next_version(primary_db.get_connection(), 1)


def test_allocator_counts_per_library(primary_db):
    allocator = VersionAllocator(primary_db)
    with primary_db.transaction() as conn:
        assert allocator.next_version(conn, 1) == 1
        assert allocator.next_version(conn, 1) == 2
        assert allocator.next_version(conn, 2) == 1
    assert primary_db.get_library_version(1) == 2
    assert primary_db.get_library_version(2) == 1
    assert primary_db.get_library_version(3) == 0


def test_allocator_rollback_releases_version(primary_db):
    allocator = VersionAllocator(primary_db)
    with pytest.raises(RuntimeError):
        with primary_db.transaction() as conn:
            allocator.next_version(conn, 1)
            raise RuntimeError("abort")
    with primary_db.transaction() as conn:
        assert allocator.next_version(conn, 1) == 1


def test_allocator_stays_above_versions_already_stored(primary_db):
    primary_db.upsert(make_record(version=41))
    with primary_db.transaction() as conn:
        assert VersionAllocator(primary_db).next_version(conn, 1) == 42


def test_allocator_floor_moves_counter_past_external_version(primary_db):
    allocator = VersionAllocator(primary_db)
    with primary_db.transaction() as conn:
        assert allocator.next_version(conn, 1) == 1
        assert allocator.next_version(conn, 1, floor=9) == 10
        assert allocator.next_version(conn, 1, floor=3) == 11
    with primary_db.transaction() as conn:
        assert allocator.next_version(conn, 2, floor=4) == 5
