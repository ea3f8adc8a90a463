"""
URL Normalizer

Raw string -> NormalizedUrl. Pure: no I/O, no state.

    normalize("HtTpS://EXAMPLE.com:443/a/./b?x=1#top")
    -> NormalizedUrl(scheme='https', host='example.com', port=0,
                     path='/a/b', query='x=1', fragment='top')

Parsing is urllib.parse.urlsplit; on top of it we apply the standard
(RFC 3986 section 6) normalizations and nothing else: case of scheme and
host, default port, dot-segments, percent-escape case and unreserved
decoding. Query parameter order and values are kept as given.
"""

import hashlib
import re
import string
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlsplit

from urlid.errors import NormalizationError

ACCEPTED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}
MAX_HOST_LENGTH = 256
FINGERPRINT_LENGTH = 32

_UNRESERVED = frozenset(string.ascii_letters + string.digits + "-._~")
_SUB_DELIMS = "!$&'()*+,;="
_PATH_SAFE = _SUB_DELIMS + ":@/"
_QUERY_SAFE = _PATH_SAFE + "?"

_ESCAPE = re.compile(r"%([0-9A-Fa-f]{2})")
_STRAY_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")
_FORBIDDEN = re.compile(r"[\x00-\x20\x7f]")
_REG_NAME = re.compile(r"^[a-z0-9\-._~%!$&'()*+,;=]+$")


# ─────────────────────────────────────────────────────────────────────────────
# Tail, fingerprint, rendering (shared with UrlRecord)
# ─────────────────────────────────────────────────────────────────────────────

def build_tail(path: str, query: Optional[str], fragment: Optional[str]) -> str:
    """Everything after the authority: path[?query][#fragment]."""
    tail = path
    if query is not None:
        tail += f"?{query}"
    if fragment is not None:
        tail += f"#{fragment}"
    return tail


def fingerprint_of(tail: str) -> str:
    """128-bit MD5 of the tail as 32 lowercase hex chars."""
    return hashlib.md5(tail.encode("utf-8")).hexdigest()


def render_url(scheme: str, host: str, port: int, path: str,
               query: Optional[str], fragment: Optional[str]) -> str:
    authority = f"{host}:{port}" if port else host
    return f"{scheme}://{authority}{build_tail(path, query, fragment)}"


@dataclass(frozen=True)
class NormalizedUrl:
    """Canonical components of an http(s) URL, not yet persisted."""
    scheme: str
    host: str
    port: int
    path: str
    query: Optional[str] = None
    fragment: Optional[str] = None

    @property
    def tail(self) -> str:
        return build_tail(self.path, self.query, self.fragment)

    @property
    def fingerprint(self) -> str:
        return fingerprint_of(self.tail)

    @property
    def bucket(self) -> tuple:
        """(scheme, host, port, fingerprint): records sharing it compete for slots."""
        return (self.scheme, self.host, self.port, self.fingerprint)

    def render(self) -> str:
        return render_url(self.scheme, self.host, self.port,
                          self.path, self.query, self.fragment)

    def __str__(self):
        return self.render()


# ─────────────────────────────────────────────────────────────────────────────
# Component normalization
# ─────────────────────────────────────────────────────────────────────────────

def _fix_escape(match: re.Match) -> str:
    char = chr(int(match.group(1), 16))
    if char in _UNRESERVED:
        return char
    return f"%{match.group(1).upper()}"


def _normalize_escapes(component: str, safe: str) -> str:
    """Percent-encode what must be, uppercase escapes, decode unreserved."""
    component = _STRAY_PERCENT.sub("%25", component)
    component = quote(component, safe=safe + "%")
    return _ESCAPE.sub(_fix_escape, component)


def _remove_dot_segments(path: str) -> str:
    """RFC 3986 5.2.4 for an absolute path."""
    segments = path.split("/")[1:]
    stack = []
    for segment in segments:
        if segment == "..":
            if stack:
                stack.pop()
        elif segment != ".":
            stack.append(segment)
    if segments and segments[-1] in (".", ".."):
        stack.append("")
    return "/" + "/".join(stack)


def _normalize_host(raw: str, hostname: Optional[str]) -> str:
    if not hostname:
        raise NormalizationError(raw, "missing host")

    # urlsplit strips the brackets of an IP literal; keep them for rendering
    if ":" in hostname:
        return f"[{hostname}]"

    if not hostname.isascii():
        try:
            hostname = hostname.encode("idna").decode("ascii")
        except UnicodeError as exc:
            raise NormalizationError(raw, f"bad host: {exc}") from None

    hostname = hostname.lower()
    if not _REG_NAME.match(hostname):
        raise NormalizationError(raw, "bad host")
    if len(hostname) > MAX_HOST_LENGTH:
        raise NormalizationError(raw, f"host longer than {MAX_HOST_LENGTH}")
    return hostname


def normalize(raw) -> NormalizedUrl:
    """
    Parse and normalize a raw URL string.

    Raises:
        NormalizationError: None, empty, unparsable, unsupported scheme,
            missing host, bad port.
    """
    if raw is None:
        raise NormalizationError(raw, "no input")
    if not isinstance(raw, str):
        raise NormalizationError(raw, "not a string")

    text = raw.strip()
    if not text:
        raise NormalizationError(raw, "empty")
    if _FORBIDDEN.search(text):
        raise NormalizationError(raw, "whitespace or control character")

    try:
        parts = urlsplit(text)
    except ValueError as exc:
        raise NormalizationError(raw, str(exc)) from None

    scheme = parts.scheme.lower()
    if scheme not in ACCEPTED_SCHEMES:
        raise NormalizationError(raw, f"unsupported scheme {scheme!r}")

    host = _normalize_host(raw, parts.hostname)

    try:
        port = parts.port or 0
    except ValueError as exc:
        raise NormalizationError(raw, str(exc)) from None
    if port == DEFAULT_PORTS[scheme]:
        port = 0

    path = _normalize_escapes(parts.path, _PATH_SAFE) or "/"
    path = _remove_dot_segments(path)

    # urlsplit reports '' for both "no query" and "empty query"
    before_hash, has_hash, _ = text.partition("#")
    has_query = "?" in before_hash
    query = _normalize_escapes(parts.query, _QUERY_SAFE) if has_query else None
    fragment = _normalize_escapes(parts.fragment, _QUERY_SAFE) if has_hash else None

    return NormalizedUrl(scheme=scheme, host=host, port=port,
                         path=path, query=query, fragment=fragment)


def try_normalize(raw) -> Optional[NormalizedUrl]:
    """normalize() that returns None instead of raising."""
    try:
        return normalize(raw)
    except NormalizationError:
        return None
