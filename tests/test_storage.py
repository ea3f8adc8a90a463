"""
Tests for urlid.storage: SQLite adapter.

The unique index is the only thing the resolver trusts, so most of this
file pokes at it directly.

Run with: pytest tests/test_storage.py -v
"""
import hashlib
import sqlite3
from dataclasses import replace

import pytest

from urlid.errors import ImmutabilityViolation, RecordNotFound, UniqueConstraintViolation
from urlid.storage import SQLiteStorage

pytestmark = [pytest.mark.unit]

PATH_HASH = hashlib.md5(b"/path").hexdigest()


# =============================================================================
# Schema
# =============================================================================

class TestSchema:

    def test_creates_db_file_and_parent(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "urls.db"
        s = SQLiteStorage(db_path)
        assert db_path.exists()
        s.close()

    def test_unique_index_columns(self, storage):
        cols = [r["name"] for r in storage.db.execute(
            "PRAGMA index_info('url_unique_index')"
        ).fetchall()]
        assert cols == ["host", "scheme", "port", "fingerprint", "slot"]

    def test_reopen_keeps_rows(self, db_path, seed, storage):
        seed("/a")
        storage.close()
        again = SQLiteStorage(db_path)
        assert again.count() == 1
        again.close()

    def test_memory_database(self):
        s = SQLiteStorage(":memory:")
        assert s.count() == 0
        s.close()

    def test_raw_update_blocked_by_trigger(self, seed, storage):
        r = seed("/a")
        with pytest.raises(sqlite3.DatabaseError, match="immutable"):
            with storage.db:
                storage.db.execute("UPDATE urls SET path = '/b' WHERE id = ?", (r.id,))
        assert storage.get(r.id).path == "/a"

    @pytest.mark.parametrize("column, value", [
        ("scheme", "ftp"),
        ("path", "no-slash"),
        ("fingerprint", "short"),
        ("slot", -1),
        ("port", -1),
    ])
    def test_check_constraints(self, seed, column, value):
        kwargs = {column: value}
        path = kwargs.pop("path", "/a")
        with pytest.raises(sqlite3.IntegrityError):
            seed(path, **kwargs)


# =============================================================================
# Adapter boundary
# =============================================================================

class TestInsert:

    def test_assigns_id_and_timestamp(self, seed):
        r = seed("/a")
        assert r.id is not None
        assert r.created_at.endswith("Z")
        assert r.persisted

    def test_duplicate_key_rejected(self, seed):
        seed("/path1", fingerprint=PATH_HASH, slot=0)
        with pytest.raises(UniqueConstraintViolation) as info:
            seed("/path2", fingerprint=PATH_HASH, slot=0)
        assert info.value.key == ("http", "example.com", 0, PATH_HASH, 0)

    def test_same_slot_other_bucket_allowed(self, seed):
        seed("/path", slot=0)
        seed("/path", slot=0, scheme="https")
        seed("/path", slot=0, host="other.example")
        seed("/path", slot=0, port=8080)

    def test_rejected_insert_leaves_no_row(self, seed, storage):
        seed("/path1", fingerprint=PATH_HASH)
        with pytest.raises(UniqueConstraintViolation):
            seed("/path2", fingerprint=PATH_HASH)
        assert storage.count() == 1

    def test_persisted_record_cannot_be_inserted_again(self, seed, storage):
        r = seed("/a")
        with pytest.raises(ValueError):
            storage.insert(r)

    def test_ids_not_reused_after_delete(self, seed, storage):
        first = seed("/a")
        storage.delete(first.id)
        second = seed("/a")
        assert second.id > first.id


class TestFindBucket:
    """find_bucket matches scheme, host, port and fingerprint; nothing else."""

    def test_bucket_membership(self, seed, storage):
        url = seed("/path", fingerprint=PATH_HASH, slot=0)
        url2 = seed("/path", fingerprint=PATH_HASH, slot=1)
        url3 = seed("/path", fingerprint=PATH_HASH, slot=3)
        dummy1 = seed("/path", fingerprint="a" * 32, slot=0)
        dummy2 = seed("/path", fingerprint=PATH_HASH, slot=0, scheme="https")
        dummy3 = seed("/path", fingerprint=PATH_HASH, slot=0, host="invalid.com")

        bucket = storage.find_bucket("http", "example.com", 0, PATH_HASH)
        ids = [r.id for r in bucket]
        assert ids == [url.id, url2.id, url3.id]
        for dummy in (dummy1, dummy2, dummy3):
            assert dummy.id not in ids

    def test_ordered_by_slot(self, seed, storage):
        seed("/c", fingerprint=PATH_HASH, slot=9)
        seed("/a", fingerprint=PATH_HASH, slot=0)
        seed("/b", fingerprint=PATH_HASH, slot=4)
        slots = [r.slot for r in storage.find_bucket("http", "example.com", 0, PATH_HASH)]
        assert slots == [0, 4, 9]

    def test_empty(self, storage):
        assert storage.find_bucket("http", "example.com", 0, PATH_HASH) == []


# =============================================================================
# Update guard
# =============================================================================

class TestUpdate:

    def test_unchanged_is_noop(self, seed, storage):
        r = seed("/a", query="x=1")
        assert storage.update(r) == r

    def test_changed_field_rejected(self, seed, storage):
        r = seed("/a", query="x=1")
        with pytest.raises(ImmutabilityViolation) as info:
            storage.update(replace(r, query="x=2"))
        assert info.value.fields == ["query"]
        assert storage.get(r.id).query == "x=1"

    def test_several_fields_reported(self, seed, storage):
        r = seed("/a")
        with pytest.raises(ImmutabilityViolation) as info:
            storage.update(replace(r, host="b.example", slot=5))
        assert info.value.fields == ["host", "slot"]

    def test_changed_created_at_rejected(self, seed, storage):
        r = seed("/a")
        with pytest.raises(ImmutabilityViolation) as info:
            storage.update(replace(r, created_at="1999-01-01T00:00:00Z"))
        assert info.value.fields == ["created_at"]
        assert storage.get(r.id).created_at == r.created_at

    def test_unknown_id(self, seed, storage):
        r = seed("/a")
        storage.delete(r.id)
        with pytest.raises(RecordNotFound):
            storage.update(r)

    def test_unpersisted(self, storage):
        from urlid.normalize import normalize
        from urlid.record import UrlRecord
        with pytest.raises(ValueError):
            storage.update(UrlRecord.from_normalized(normalize("http://e.com/")))


# =============================================================================
# Get / delete / listing
# =============================================================================

class TestAdmin:

    def test_get(self, seed, storage):
        r = seed("/a", query="", fragment=None)
        got = storage.get(r.id)
        assert got == r
        assert got.query == ""
        assert got.fragment is None

    def test_get_missing(self, storage):
        assert storage.get(12345) is None

    def test_delete_missing(self, storage):
        with pytest.raises(RecordNotFound):
            storage.delete(12345)

    def test_list_by_host(self, seed, storage):
        seed("/a")
        seed("/b")
        seed("/c", host="other.example")
        assert [r.path for r in storage.list_by_host("EXAMPLE.com")] == ["/a", "/b"]

    def test_list_recent(self, seed, storage):
        seed("/a")
        seed("/b")
        assert [r.path for r in storage.list_recent(limit=1)] == ["/b"]

    def test_stats(self, seed, storage):
        seed("/path", fingerprint=PATH_HASH, slot=0)
        seed("/path1", fingerprint=PATH_HASH, slot=1)
        seed("/x", host="other.example")
        assert storage.stats() == {
            "url_count": 3,
            "hosts": 2,
            "collided_buckets": 1,
            "max_slot": 1,
        }
