"""
URL storage adapters.

Storage is the boundary the resolver relies on:

    find_bucket(scheme, host, port, fingerprint) -> [UrlRecord] by slot
    insert(record) -> UrlRecord | raise UniqueConstraintViolation

The adapter must reject a duplicate (scheme, host, port, fingerprint, slot)
atomically. SQLiteStorage gets that from url_unique_index; nothing in this
module takes a lock.
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from urlid import config
from urlid.errors import ImmutabilityViolation, RecordNotFound, UniqueConstraintViolation
from urlid.logging import get_logger
from urlid.record import UrlRecord

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

_COLUMNS = "id, scheme, host, port, path, query, fragment, fingerprint, slot, created_at"

logger = get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class Storage(ABC):
    """Durable table of UrlRecords."""

    @abstractmethod
    def find_bucket(self, scheme: str, host: str, port: int,
                    fingerprint: str) -> List[UrlRecord]:
        """All records in the bucket, ordered by slot."""

    @abstractmethod
    def insert(self, record: UrlRecord) -> UrlRecord:
        """Persist a new record and return it with id set.

        Raises:
            UniqueConstraintViolation: the five-tuple is taken.
        """

    @abstractmethod
    def get(self, url_id: int) -> Optional[UrlRecord]:
        """Record by id, or None."""

    @abstractmethod
    def delete(self, url_id: int) -> None:
        """Remove a record. Out-of-band cleanup only; resolve never deletes."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""

    @abstractmethod
    def list_by_host(self, host: str, limit: int = 100) -> List[UrlRecord]:
        """Records for one host."""

    @abstractmethod
    def list_recent(self, limit: int = 100) -> List[UrlRecord]:
        """Newest records first."""

    @abstractmethod
    def stats(self) -> dict:
        """Counts for reporting."""

    def update(self, record: UrlRecord) -> UrlRecord:
        """
        Update path for persisted records. Only a no-op is allowed.

        The stored row is the before-image: any difference in an identity
        field raises ImmutabilityViolation and nothing is written.
        """
        if not record.persisted:
            raise ValueError("update() needs a persisted record; use insert()")
        before = self.get(record.id)
        if before is None:
            raise RecordNotFound(record.id)
        changed = before.changed_fields(record)
        if changed:
            logger.warning("immutability_violation", url_id=record.id, fields=changed)
            raise ImmutabilityViolation(record.id, changed)
        return before


class SQLiteStorage(Storage):
    """
    SQLite-backed storage.

    One connection per thread, so a single instance can be shared by
    threads; separate processes just open the same file. ':memory:' uses a
    single connection and is meant for one thread.
    """

    def __init__(self, db_path: Union[str, Path] = None, timeout: float = None):
        self.db_path = str(db_path or config.DB_PATH)
        self.timeout = config.DB_TIMEOUT if timeout is None else timeout
        self._local = threading.local()
        self._shared = None
        self._connections = []
        self._connections_lock = threading.Lock()

        if self.in_memory:
            self._shared = self._connect()
        else:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def in_memory(self) -> bool:
        return self.db_path == ":memory:"

    def _connect(self) -> sqlite3.Connection:
        # Each thread uses only its own connection; close() may run elsewhere
        db = sqlite3.connect(self.db_path, timeout=self.timeout,
                             check_same_thread=False)
        db.row_factory = sqlite3.Row
        if not self.in_memory:
            db.execute("PRAGMA journal_mode=WAL")
            db.execute("PRAGMA synchronous=NORMAL")
        with self._connections_lock:
            self._connections.append(db)
        return db

    @property
    def db(self) -> sqlite3.Connection:
        """Connection for the calling thread."""
        if self._shared is not None:
            return self._shared
        db = getattr(self._local, "db", None)
        if db is None:
            db = self._connect()
            self._local.db = db
        return db

    def _init_schema(self):
        """Create the urls table and its unique index if missing."""
        with open(SCHEMA_PATH) as f:
            script = f.read()
        self.db.executescript(script)
        self.db.commit()

    def close(self):
        """Close every connection this instance opened."""
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for db in connections:
            db.close()
        self._local = threading.local()
        self._shared = None

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> UrlRecord:
        return UrlRecord(
            id=row["id"],
            scheme=row["scheme"],
            host=row["host"],
            port=row["port"],
            path=row["path"],
            query=row["query"],
            fragment=row["fragment"],
            fingerprint=row["fingerprint"],
            slot=row["slot"],
            created_at=row["created_at"],
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Adapter boundary
    # ─────────────────────────────────────────────────────────────────────────

    def find_bucket(self, scheme, host, port, fingerprint):
        rows = self.db.execute(f"""
            SELECT {_COLUMNS} FROM urls
            WHERE host = ? AND scheme = ? AND port = ? AND fingerprint = ?
            ORDER BY slot
        """, (host, scheme, port, fingerprint)).fetchall()
        return [self._row_to_record(r) for r in rows]

    def insert(self, record):
        if record.persisted:
            raise ValueError(f"url {record.id} is already persisted")

        created_at = _now_iso()
        db = self.db
        try:
            with db:
                cursor = db.execute("""
                    INSERT INTO urls (scheme, host, port, path, query, fragment,
                                      fingerprint, slot, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (record.scheme, record.host, record.port, record.path,
                      record.query, record.fragment, record.fingerprint,
                      record.slot, created_at))
        except sqlite3.IntegrityError as exc:
            if "UNIQUE constraint failed" not in str(exc):
                raise
            raise UniqueConstraintViolation(record.key, str(exc)) from exc

        return UrlRecord(
            id=cursor.lastrowid,
            scheme=record.scheme,
            host=record.host,
            port=record.port,
            path=record.path,
            query=record.query,
            fragment=record.fragment,
            fingerprint=record.fingerprint,
            slot=record.slot,
            created_at=created_at,
        )

    def get(self, url_id):
        row = self.db.execute(
            f"SELECT {_COLUMNS} FROM urls WHERE id = ?", (url_id,)
        ).fetchone()
        return self._row_to_record(row) if row else None

    def delete(self, url_id):
        db = self.db
        with db:
            cursor = db.execute("DELETE FROM urls WHERE id = ?", (url_id,))
        if cursor.rowcount == 0:
            raise RecordNotFound(url_id)
        logger.info("url_deleted", url_id=url_id)

    # ─────────────────────────────────────────────────────────────────────────
    # Listing
    # ─────────────────────────────────────────────────────────────────────────

    def count(self) -> int:
        return self.db.execute("SELECT COUNT(*) FROM urls").fetchone()[0]

    def list_by_host(self, host: str, limit: int = 100) -> List[UrlRecord]:
        rows = self.db.execute(f"""
            SELECT {_COLUMNS} FROM urls
            WHERE host = ?
            ORDER BY id
            LIMIT ?
        """, (host.lower(), limit)).fetchall()
        return [self._row_to_record(r) for r in rows]

    def list_recent(self, limit: int = 100) -> List[UrlRecord]:
        rows = self.db.execute(f"""
            SELECT {_COLUMNS} FROM urls
            ORDER BY id DESC
            LIMIT ?
        """, (limit,)).fetchall()
        return [self._row_to_record(r) for r in rows]

    def stats(self) -> dict:
        url_count = self.count()
        host_count = self.db.execute(
            "SELECT COUNT(DISTINCT host) FROM urls"
        ).fetchone()[0]
        # buckets holding more than one URL, i.e. real fingerprint collisions
        collided = self.db.execute("""
            SELECT COUNT(*) FROM (
                SELECT 1 FROM urls
                GROUP BY host, scheme, port, fingerprint
                HAVING COUNT(*) > 1
            )
        """).fetchone()[0]
        max_slot = self.db.execute("SELECT MAX(slot) FROM urls").fetchone()[0]
        return {
            "url_count": url_count,
            "hosts": host_count,
            "collided_buckets": collided,
            "max_slot": max_slot or 0,
        }
