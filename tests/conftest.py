"""
urlid Test Fixtures

Temporary SQLite databases per test, plus a helper to plant rows directly
(with forged fingerprints) so bucket collisions can be set up without
finding real MD5 collisions.

Run with: pytest tests/ -v
"""
import hashlib

import pytest

from urlid.identity import URLIdentity
from urlid.record import UrlRecord
from urlid.storage import SQLiteStorage


def md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


# =============================================================================
# Storage / store
# =============================================================================

@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "urls.db"


@pytest.fixture
def storage(db_path):
    """File-backed SQLite storage in a temp dir."""
    s = SQLiteStorage(db_path)
    yield s
    s.close()


@pytest.fixture
def ui(storage):
    """URLIdentity over the temp storage, default retry budget."""
    return URLIdentity(storage=storage, max_retry=3)


# =============================================================================
# Seeding
# =============================================================================

@pytest.fixture
def seed(storage):
    """
    Insert a row as-is, bypassing resolve().

        seed("/path1", fingerprint=md5("/path"), slot=0)
    """
    def _seed(path, fingerprint=None, slot=0, scheme="http", host="example.com",
              port=0, query=None, fragment=None):
        tail = path
        if query is not None:
            tail += f"?{query}"
        if fragment is not None:
            tail += f"#{fragment}"
        record = UrlRecord(
            scheme=scheme,
            host=host,
            port=port,
            path=path,
            query=query,
            fragment=fragment,
            fingerprint=fingerprint or md5(tail),
            slot=slot,
        )
        return storage.insert(record)

    return _seed
