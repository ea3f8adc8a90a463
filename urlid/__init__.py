"""
urlid: canonical, deduplicated URL identities.

  normalize.py   raw string -> NormalizedUrl (pure)
  record.py      UrlRecord, write-once once persisted
  storage.py     storage boundary + SQLite adapter (unique index = the lock)
  identity.py    URLIdentity: find-or-create with slot tie-breaking
  cli.py         urlid command
"""

from urlid.errors import (
    ImmutabilityViolation,
    IntegrityFault,
    NormalizationError,
    RecordNotFound,
    ResolutionConflict,
    UniqueConstraintViolation,
    URLIdentityError,
)
from urlid.identity import URLIdentity, get_instance
from urlid.normalize import NormalizedUrl, normalize
from urlid.record import UrlRecord
from urlid.storage import SQLiteStorage, Storage

__all__ = [
    "URLIdentity",
    "get_instance",
    "NormalizedUrl",
    "normalize",
    "UrlRecord",
    "Storage",
    "SQLiteStorage",
    "URLIdentityError",
    "NormalizationError",
    "UniqueConstraintViolation",
    "ResolutionConflict",
    "IntegrityFault",
    "ImmutabilityViolation",
    "RecordNotFound",
]
