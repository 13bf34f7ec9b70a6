from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import jsonschema

from sqlsum.checksum.hasher import HashedSource, format_timestamp

MANIFEST_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "urn:sqlsum:schema:sql_checksums:1.0.0",
    "type": "object",
    "required": ["generated", "totalFiles", "checksums"],
    "properties": {
        "generated": {"type": "string", "minLength": 1},
        "totalFiles": {"type": "integer", "minimum": 0},
        "checksums": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["hash", "file", "lastModified", "size"],
                "properties": {
                    "hash": {"type": "string"},
                    "file": {"type": "string"},
                    "lastModified": {"type": "string"},
                    "size": {"type": "integer", "minimum": 0},
                },
            },
        },
    },
}


class StructuralError(ValueError):
    """A required artifact is missing or malformed; verification cannot proceed."""


class ManifestParseError(StructuralError):
    pass


class ManifestStructureError(StructuralError):
    def __init__(self, path: Path, errors: list[str]) -> None:
        self.path = path
        self.errors = list(errors)
        super().__init__(f"{path.as_posix()}: invalid manifest structure: " + "; ".join(self.errors))


@dataclass(frozen=True)
class ChecksumEntry:
    hash: str
    file: str
    last_modified: str
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "file": self.file,
            "lastModified": self.last_modified,
            "size": self.size,
        }


@dataclass(frozen=True)
class ChecksumManifest:
    generated: str
    total_files: int
    checksums: dict[str, ChecksumEntry]

    def hash_for(self, rel_path: str) -> Optional[str]:
        entry = self.checksums.get(rel_path)
        return entry.hash if entry is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated": self.generated,
            "totalFiles": self.total_files,
            "checksums": {k: self.checksums[k].to_dict() for k in sorted(self.checksums)},
        }


def repo_relative(path: Path, *, repo_root: Path) -> str:
    try:
        return path.resolve().relative_to(repo_root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def checksum_entry(hashed: HashedSource) -> ChecksumEntry:
    return ChecksumEntry(
        hash=hashed.hash,
        file=hashed.path.name,
        last_modified=hashed.last_modified,
        size=hashed.size_bytes,
    )


def manifest_from_entries(
    checksums: dict[str, ChecksumEntry], *, now: Optional[datetime] = None
) -> ChecksumManifest:
    generated = format_timestamp(now or datetime.now(timezone.utc))
    return ChecksumManifest(generated=generated, total_files=len(checksums), checksums=dict(checksums))


def save_manifest(manifest: ChecksumManifest, *, path: Path) -> None:
    """Write the whole manifest, replacing whatever was there."""

    path.parent.mkdir(parents=True, exist_ok=True)
    data = json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False) + "\n"
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(data, encoding="utf-8", newline="\n")
    tmp.replace(path)


def _structure_errors(doc: Any) -> list[str]:
    validator = jsonschema.Draft202012Validator(MANIFEST_SCHEMA)
    errors = sorted(validator.iter_errors(doc), key=lambda e: [str(p) for p in e.absolute_path])
    out: list[str] = []
    for err in errors:
        where = "/".join(str(p) for p in err.absolute_path) or "<root>"
        out.append(f"{where}: {err.message}")
    return out


def load_manifest(*, path: Path) -> ChecksumManifest:
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"{path.as_posix()}: invalid JSON: {e}") from e

    errors = _structure_errors(doc)
    if errors:
        raise ManifestStructureError(path, errors)

    checksums = {
        str(rel): ChecksumEntry(
            hash=str(entry["hash"]),
            file=str(entry["file"]),
            last_modified=str(entry["lastModified"]),
            size=int(entry["size"]),
        )
        for rel, entry in doc["checksums"].items()
    }
    return ChecksumManifest(generated=doc["generated"], total_files=int(doc["totalFiles"]), checksums=checksums)
