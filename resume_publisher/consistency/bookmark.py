"""Opaque read-your-writes bookmarks.

A bookmark is ``base64url("<lsn>|<issued_ms>")`` where ``lsn`` is the primary's
WAL position right after the write committed. Readers holding a live bookmark
only use a replica that has replayed at least that far.
"""

import base64
import binascii
import re
import time
from dataclasses import dataclass

_LSN_RE = re.compile(r"^[0-9A-F]{1,8}/[0-9A-F]{1,8}$")


@dataclass(frozen=True)
class Bookmark:
    lsn: str
    issued_ms: int


def encode_bookmark(lsn: str, issued_ms: int | None = None) -> str:
    issued = int(time.time() * 1000) if issued_ms is None else issued_ms
    raw = f"{lsn.upper()}|{issued}".encode("ascii")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_bookmark(
    token: str | None, ttl_seconds: int, now_ms: int | None = None
) -> Bookmark | None:
    """Return the bookmark, or None when it is missing, malformed or expired."""
    if not token:
        return None
    try:
        padded = token + "=" * (-len(token) % 4)
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("ascii")
        lsn, issued_raw = raw.split("|")
        issued_ms = int(issued_raw)
    except (binascii.Error, UnicodeError, ValueError):
        return None
    if not _LSN_RE.match(lsn):
        return None
    current = int(time.time() * 1000) if now_ms is None else now_ms
    if current - issued_ms > ttl_seconds * 1000 or issued_ms > current + 1000:
        return None
    return Bookmark(lsn=lsn, issued_ms=issued_ms)
