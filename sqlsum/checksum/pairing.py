from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from sqlsum.checksum.scanner import stem_of


def _key(stem: str, *, case_sensitive: bool) -> str:
    return stem if case_sensitive else stem.lower()


def build_stem_index(
    paths: Iterable[Path], *, suffix: str, case_sensitive: bool
) -> dict[str, list[Path]]:
    index: dict[str, list[Path]] = {}
    for p in paths:
        index.setdefault(_key(stem_of(p, suffix=suffix), case_sensitive=case_sensitive), []).append(p)
    return index


@dataclass(frozen=True)
class Pairing:
    pairs: dict[Path, Path]
    missing_types: list[Path]
    orphan_types: list[Path]
    ambiguous_stems: dict[str, list[Path]]
    candidates: dict[Path, list[Path]] = field(default_factory=dict)

    def type_file_for(self, sql_path: Path) -> Optional[Path]:
        return self.pairs.get(sql_path)

    def type_files_for(self, sql_path: Path) -> list[Path]:
        """Every type file whose stem matches, e.g. case variants when matching case-insensitively."""

        return list(self.candidates.get(sql_path, ()))


def pair_files(
    sql_files: Iterable[Path],
    type_files: Iterable[Path],
    *,
    sql_suffix: str,
    types_suffix: str,
    case_sensitive: bool,
) -> Pairing:
    """Pair query files with generated type files by stem.

    Both sides are indexed by stem and the key sets diffed. Stems shared by
    several query files are reported as ambiguous; each of those sources is
    still paired with the type file so drift in any of them stays visible.
    """

    sql_index = build_stem_index(sql_files, suffix=sql_suffix, case_sensitive=case_sensitive)
    type_index = build_stem_index(type_files, suffix=types_suffix, case_sensitive=case_sensitive)

    pairs: dict[Path, Path] = {}
    candidates: dict[Path, list[Path]] = {}
    missing: list[Path] = []
    ambiguous: dict[str, list[Path]] = {}

    for key in sorted(sql_index):
        sources = sql_index[key]
        if len(sources) > 1:
            ambiguous[key] = list(sources)
        targets = type_index.get(key)
        for src in sources:
            if not targets:
                missing.append(src)
            else:
                pairs[src] = targets[0]
                candidates[src] = list(targets)

    orphans = [p for key in sorted(type_index) if key not in sql_index for p in type_index[key]]

    return Pairing(
        pairs=pairs,
        missing_types=missing,
        orphan_types=orphans,
        ambiguous_stems=ambiguous,
        candidates=candidates,
    )
