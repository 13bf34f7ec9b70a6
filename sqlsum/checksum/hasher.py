from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

_TRAILING_WS_RE = re.compile(r"[\s\ufeff]+$", re.MULTILINE)
_EDGE_WS_RE = re.compile(r"\A[\s\ufeff]+|[\s\ufeff]+\Z")
_SHA256_HEX_RE = re.compile(r"^[0-9a-f]{64}$")


def normalize_sql_text(text: str) -> str:
    """Canonical form of a SQL file used for hashing.

    CRLF becomes LF, whitespace runs that end a line are dropped and the whole
    document is trimmed. A whitespace run may span newlines, so runs of blank
    lines collapse as well. U+FEFF counts as whitespace, so a byte order mark
    does not change the hash and hashes stay comparable with manifests
    written by earlier generator runs.
    """

    text = text.replace("\r\n", "\n")
    text = _TRAILING_WS_RE.sub("", text)
    return _EDGE_WS_RE.sub("", text)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sql_hash(text: str) -> str:
    return sha256_hex(normalize_sql_text(text).encode("utf-8"))


def is_sha256_hex(value: str) -> bool:
    return _SHA256_HEX_RE.match(value) is not None


def format_timestamp(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class HashedSource:
    path: Path
    hash: str
    size_bytes: int
    last_modified: str


def hash_sql_file(path: Path) -> HashedSource:
    data = path.read_bytes()
    mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    return HashedSource(
        path=path,
        hash=sql_hash(data.decode("utf-8")),
        size_bytes=len(data),
        last_modified=format_timestamp(mtime),
    )
