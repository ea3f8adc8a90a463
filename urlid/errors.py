"""
URL Identity errors.

    URLIdentityError
    ├── NormalizationError          input is not a usable http(s) URL
    ├── UniqueConstraintViolation   insert lost a race on the bucket/slot index
    ├── ResolutionConflict          retry budget spent on lost races
    ├── IntegrityFault              bucket holds duplicate tails (index was bypassed)
    ├── ImmutabilityViolation       persisted record was changed
    └── RecordNotFound              unknown url id
"""

from typing import Optional, Sequence


class URLIdentityError(Exception):
    """Base class for every error raised by urlid."""


class NormalizationError(URLIdentityError, ValueError):
    """Raw input is not a valid http(s) URL."""

    def __init__(self, raw, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"not a valid URL ({reason}): {raw!r}")


class UniqueConstraintViolation(URLIdentityError):
    """Insert rejected by the (scheme, host, port, fingerprint, slot) index."""

    def __init__(self, key: tuple, detail: Optional[str] = None):
        self.key = key
        self.detail = detail
        message = f"unique constraint rejected {key!r}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class ResolutionConflict(URLIdentityError):
    """Lost the slot race on every attempt."""

    def __init__(self, url: str, attempts: int):
        self.url = url
        self.attempts = attempts
        super().__init__(f"could not resolve {url} after {attempts} attempts")


class IntegrityFault(URLIdentityError):
    """More than one record in a bucket carries the same tail."""

    def __init__(self, url: str, ids: Sequence[int]):
        self.url = url
        self.ids = list(ids)
        super().__init__(f"not_unique_urls! url: {url}, ids: {self.ids}")


class ImmutabilityViolation(URLIdentityError):
    """A persisted record cannot change."""

    def __init__(self, url_id, fields: Sequence[str]):
        self.url_id = url_id
        self.fields = list(fields)
        super().__init__(
            f"url {url_id} is immutable; refused change to {', '.join(self.fields)}"
        )


class RecordNotFound(URLIdentityError, KeyError):
    """No record with this id."""

    def __init__(self, url_id):
        self.url_id = url_id
        super().__init__(url_id)

    def __str__(self):
        return f"url_id not found: {self.url_id}"
