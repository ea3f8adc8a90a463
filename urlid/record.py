"""
UrlRecord: the canonical, persisted identity of one URL.

A record is mutable only until storage gives it an id. After that every
field is frozen: assignment or deletion raises ImmutabilityViolation. Derived copies
(dataclasses.replace) are allowed, but Storage.update refuses to write them.
"""

from dataclasses import dataclass, fields
from typing import Optional

from urlid.errors import ImmutabilityViolation
from urlid.normalize import NormalizedUrl, build_tail, render_url

# Columns that make up the identity of the URL
IDENTITY_FIELDS = ("scheme", "host", "port", "path", "query", "fragment",
                   "fingerprint", "slot")

# Everything storage holds besides the id; compared against the before-image
STORED_FIELDS = IDENTITY_FIELDS + ("created_at",)


@dataclass
class UrlRecord:
    """One row of the urls table."""
    scheme: str
    host: str
    port: int
    path: str
    query: Optional[str]
    fragment: Optional[str]
    fingerprint: str
    slot: int = 0
    id: Optional[int] = None
    created_at: Optional[str] = None

    def __setattr__(self, name, value):
        state = self.__dict__
        if state.get("id") is not None and name in state:
            raise ImmutabilityViolation(state["id"], [name])
        object.__setattr__(self, name, value)

    def __delattr__(self, name):
        state = self.__dict__
        if state.get("id") is not None:
            raise ImmutabilityViolation(state["id"], [name])
        object.__delattr__(self, name)

    @classmethod
    def from_normalized(cls, url: NormalizedUrl, slot: int = 0) -> "UrlRecord":
        return cls(
            scheme=url.scheme,
            host=url.host,
            port=url.port,
            path=url.path,
            query=url.query,
            fragment=url.fragment,
            fingerprint=url.fingerprint,
            slot=slot,
        )

    @property
    def persisted(self) -> bool:
        return self.id is not None

    @property
    def tail(self) -> str:
        """path[?query][#fragment]: compared verbatim to tell collisions from duplicates."""
        return build_tail(self.path, self.query, self.fragment)

    @property
    def bucket(self) -> tuple:
        return (self.scheme, self.host, self.port, self.fingerprint)

    @property
    def key(self) -> tuple:
        """The uniquely indexed five-tuple."""
        return (self.scheme, self.host, self.port, self.fingerprint, self.slot)

    def to_normalized(self) -> NormalizedUrl:
        return NormalizedUrl(scheme=self.scheme, host=self.host, port=self.port,
                             path=self.path, query=self.query, fragment=self.fragment)

    def changed_fields(self, other: "UrlRecord") -> list:
        """Stored fields where other differs from self."""
        return [name for name in STORED_FIELDS
                if getattr(self, name) != getattr(other, name)]

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def render(self) -> str:
        return render_url(self.scheme, self.host, self.port,
                          self.path, self.query, self.fragment)

    def __str__(self):
        return self.render()
