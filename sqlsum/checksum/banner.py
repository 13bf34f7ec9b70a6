from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sqlsum.checksum.hasher import is_sha256_hex

BANNER_RE = re.compile(r"/\* HASH: ([0-9a-f]+) \*/")
_EXTRA_BANNER_RE = re.compile(r"/\* HASH: [0-9a-f]+ \*/(?:\r?\n)?")
_FIRST_IMPORT_RE = re.compile(r"^import\b", re.MULTILINE)

STATUS_UPDATED = "UPDATED"
STATUS_UNCHANGED = "UNCHANGED"
STATUS_NOT_FOUND = "NOT_FOUND"


def format_banner(sql_hash: str) -> str:
    return f"/* HASH: {sql_hash} */"


def extract_banner_hash(text: str) -> Optional[str]:
    m = BANNER_RE.search(text)
    return m.group(1) if m is not None else None


def upsert_hash_banner(text: str, sql_hash: str) -> str:
    """Return ``text`` carrying exactly one banner for ``sql_hash``.

    An existing banner is replaced where it stands. Otherwise the banner goes on
    its own line right before the first import statement, or at the very top
    when the file has no imports.
    """

    if not is_sha256_hex(sql_hash):
        raise ValueError(f"not a sha256 hex digest: {sql_hash!r}")

    banner = format_banner(sql_hash)
    newline = "\r\n" if "\r\n" in text else "\n"
    m = BANNER_RE.search(text)
    if m is not None:
        tail = _EXTRA_BANNER_RE.sub("", text[m.end() :])
        return text[: m.start()] + banner + tail

    imp = _FIRST_IMPORT_RE.search(text)
    if imp is not None:
        return text[: imp.start()] + banner + newline + text[imp.start() :]
    return banner + newline + text


@dataclass(frozen=True)
class BannerWriteResult:
    path: Path
    status: str
    previous_hash: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status != STATUS_NOT_FOUND


def write_hash_banner(*, path: Path, sql_hash: str) -> BannerWriteResult:
    if not path.is_file():
        return BannerWriteResult(path=path, status=STATUS_NOT_FOUND)

    # Bytes round trip keeps the file's own line endings.
    text = path.read_bytes().decode("utf-8")
    previous = extract_banner_hash(text)
    updated = upsert_hash_banner(text, sql_hash)
    if updated == text:
        return BannerWriteResult(path=path, status=STATUS_UNCHANGED, previous_hash=previous)

    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(updated.encode("utf-8"))
    tmp.replace(path)
    return BannerWriteResult(path=path, status=STATUS_UPDATED, previous_hash=previous)
