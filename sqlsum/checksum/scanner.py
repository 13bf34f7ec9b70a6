from __future__ import annotations

import os
from pathlib import Path

DEFAULT_SQL_SUFFIX = ".sql"
DEFAULT_TYPES_SUFFIX = ".types.ts"


def _walk(directory: Path, *, suffix: str, out: list[Path]) -> None:
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        if entry.is_dir():
            _walk(Path(entry.path), suffix=suffix, out=out)
        elif entry.is_file() and entry.name.endswith(suffix):
            out.append(Path(entry.path))


def find_sql_files(root: Path, *, suffix: str = DEFAULT_SQL_SUFFIX) -> list[Path]:
    """Depth-first listing of query files below ``root``.

    A missing root yields an empty list so callers can report the absent
    directory themselves.
    """

    if not root.is_dir():
        return []
    out: list[Path] = []
    _walk(root, suffix=suffix, out=out)
    return out


def list_type_files(types_dir: Path, *, suffix: str = DEFAULT_TYPES_SUFFIX) -> list[Path]:
    if not types_dir.is_dir():
        return []
    return sorted(p for p in types_dir.iterdir() if p.is_file() and p.name.endswith(suffix))


def stem_of(path: Path, *, suffix: str) -> str:
    name = path.name
    if suffix and name.endswith(suffix):
        return name[: -len(suffix)]
    return name
