"""
URL Identity: canonical store

One immutable record per canonical URL, safe under concurrent writers.

Usage:
    from urlid import URLIdentity

    ui = URLIdentity()
    record = ui.assign("HTTP://Example.com/page?x=1")
    record.id, record.slot, record.render()
    ui.assign("http://example.com/page?x=1").id == record.id   # True

Bucketing:
    bucket = (scheme, host, port, md5(tail))
    slot   = 0 for the first URL in a bucket, max(slot) + 1 for each
             different tail that hashes into it

The unique index on (bucket, slot) is the only synchronization. Two writers
computing the same slot race on the insert; the loser re-reads the bucket
and either finds its URL (someone else created it) or takes the next slot.
"""

from dataclasses import replace
from typing import List, Optional, Union

from urlid import config
from urlid.errors import IntegrityFault, RecordNotFound, ResolutionConflict, UniqueConstraintViolation
from urlid.logging import get_logger
from urlid.normalize import NormalizedUrl, normalize
from urlid.record import UrlRecord
from urlid.storage import SQLiteStorage, Storage

logger = get_logger(__name__)


class URLIdentity:
    """
    Find-or-create for canonical URLs.

    Resolution: (scheme, host, port, fingerprint) selects the bucket, an
    exact tail match inside it is the record.
    Retry: only a lost insert race is retried, max_retry times.
    """

    def __init__(self, storage: Storage = None, max_retry: int = None):
        self.storage = storage if storage is not None else SQLiteStorage()
        self.max_retry = config.MAX_RETRY if max_retry is None else max_retry
        if self.max_retry < 0:
            raise ValueError(f"max_retry must be >= 0, got {self.max_retry}")

    def close(self):
        close = getattr(self.storage, "close", None)
        if close:
            close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ─────────────────────────────────────────────────────────────────────────
    # Core API
    # ─────────────────────────────────────────────────────────────────────────

    def assign(self, raw: str) -> UrlRecord:
        """
        Normalize and resolve a raw URL string.

        Raises:
            NormalizationError: not an http(s) URL.
            IntegrityFault, ResolutionConflict: see resolve().
        """
        return self.resolve(normalize(raw))

    def resolve(self, url: NormalizedUrl, max_retry: int = None) -> UrlRecord:
        """
        Return the record for url, creating it if needed.

        Idempotent: the same url always comes back as the same record.

        Args:
            url: output of normalize()
            max_retry: lost-race retries (default: self.max_retry)

        Raises:
            IntegrityFault: the bucket already holds two rows for this tail.
            ResolutionConflict: every attempt lost its insert race.
        """
        retries = self.max_retry if max_retry is None else max_retry
        if retries < 0:
            raise ValueError(f"max_retry must be >= 0, got {retries}")
        candidate = UrlRecord.from_normalized(url)
        attempts = retries + 1
        conflict = None

        for attempt in range(1, attempts + 1):
            outcome = self._attempt(candidate)
            if isinstance(outcome, UrlRecord):
                return outcome

            conflict = outcome
            logger.info("insert_conflict", url=candidate.render(), slot=outcome.key[-1],
                        attempt=attempt, attempts=attempts)

        logger.error("resolution_conflict", url=candidate.render(), attempts=attempts)
        raise ResolutionConflict(candidate.render(), attempts) from conflict

    def _attempt(self, candidate: UrlRecord) -> Union[UrlRecord, UniqueConstraintViolation]:
        """
        One bucket read and at most one insert.

        Returns the resolved record, or the UniqueConstraintViolation if the
        insert lost a race (the caller decides whether to go again).
        """
        bucket = self.storage.find_bucket(*candidate.bucket)
        matches = [r for r in bucket if r.tail == candidate.tail]

        if len(matches) == 1:
            logger.debug("url_found", url_id=matches[0].id, slot=matches[0].slot)
            return matches[0]
        if len(matches) > 1:
            ids = [r.id for r in matches]
            logger.error("integrity_fault", url=candidate.render(), ids=ids)
            raise IntegrityFault(candidate.render(), ids)

        # Empty bucket starts at 0; otherwise a collision takes the next slot
        slot = max(r.slot for r in bucket) + 1 if bucket else 0
        try:
            record = self.storage.insert(replace(candidate, slot=slot))
        except UniqueConstraintViolation as exc:
            return exc

        logger.info("url_created", url_id=record.id, url=record.render(),
                    slot=record.slot, collisions=len(bucket))
        return record

    def lookup(self, url: Union[str, NormalizedUrl]) -> Optional[UrlRecord]:
        """Existing record for url without creating one; None if untracked."""
        if not isinstance(url, NormalizedUrl):
            url = normalize(url)
        matches = [r for r in self.storage.find_bucket(*url.bucket) if r.tail == url.tail]
        if len(matches) > 1:
            raise IntegrityFault(url.render(), [r.id for r in matches])
        return matches[0] if matches else None

    def same_bucket(self, url: Union[UrlRecord, NormalizedUrl, str]) -> List[UrlRecord]:
        """Every record sharing url's (scheme, host, port, fingerprint)."""
        if isinstance(url, str):
            url = normalize(url)
        return self.storage.find_bucket(*url.bucket)

    def save(self, record: UrlRecord) -> UrlRecord:
        """Persist a record: inserts go through resolve(), persisted ones must be unchanged."""
        if record.persisted:
            return self.storage.update(record)
        return self.resolve(record.to_normalized())

    # ─────────────────────────────────────────────────────────────────────────
    # Administration
    # ─────────────────────────────────────────────────────────────────────────

    def get(self, url_id: int) -> Optional[UrlRecord]:
        return self.storage.get(url_id)

    def locate(self, url_id: int) -> Optional[str]:
        """Rendered URL for an id."""
        record = self.storage.get(url_id)
        return record.render() if record else None

    def exists(self, url_id: int) -> bool:
        return self.storage.get(url_id) is not None

    def delete(self, url_id: int) -> None:
        """
        Remove a record (administrative cleanup).

        Slots are never renumbered; the freed slot is only taken again if
        max(slot) + 1 lands on it.
        """
        self.storage.delete(url_id)

    def require(self, url_id: int) -> UrlRecord:
        record = self.storage.get(url_id)
        if record is None:
            raise RecordNotFound(url_id)
        return record

    def list_by_host(self, host: str, limit: int = 100) -> List[UrlRecord]:
        return self.storage.list_by_host(host, limit=limit)

    def list_recent(self, limit: int = 100) -> List[UrlRecord]:
        return self.storage.list_recent(limit=limit)

    def stats(self) -> dict:
        return self.storage.stats()


# Singleton
_instance: Optional[URLIdentity] = None


def get_instance() -> URLIdentity:
    """Get singleton URLIdentity bound to the configured database."""
    global _instance
    if _instance is None:
        _instance = URLIdentity()
    return _instance
