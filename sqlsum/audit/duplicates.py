from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

SP_PREFIX = "sp_"
CALL_PREFIX = "call_"


def load_routine_names(*, path: Path) -> list[str]:
    """Read database routine names, one per line; blank lines and ``#`` comments are ignored."""

    names: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            names.append(line)
    return names


@dataclass(frozen=True)
class FunctionalDuplicate:
    routine: str
    sql_file: str


@dataclass(frozen=True)
class CallWrapper:
    sql_file: str
    procedure: str


@dataclass
class DuplicateAudit:
    routines: int = 0
    sql_files: int = 0
    exact_matches: list[str] = field(default_factory=list)
    functional_duplicates: list[FunctionalDuplicate] = field(default_factory=list)
    call_wrappers: list[CallWrapper] = field(default_factory=list)
    db_only: list[str] = field(default_factory=list)
    sql_only: list[str] = field(default_factory=list)
    keep: list[str] = field(default_factory=list)

    @property
    def total_duplicates(self) -> int:
        return len(self.exact_matches) + len(self.functional_duplicates)

    def drop_statements(self) -> list[str]:
        names = list(self.exact_matches) + [d.routine for d in self.functional_duplicates]
        return [f"DROP FUNCTION {name}();" for name in names]


def audit_duplicates(
    *,
    routines: Iterable[str],
    sql_stems: Iterable[str],
    keep_keywords: Sequence[str] = (),
) -> DuplicateAudit:
    """Classify stored routines against query files of the same name.

    A routine duplicates a query when the names match exactly or once the
    ``sp_`` prefix is dropped. ``call_sp_x`` queries that only invoke an
    existing ``sp_x`` routine are call wrappers.
    """

    routine_list = list(dict.fromkeys(routines))
    stem_list = sorted(set(sql_stems))
    routine_set = set(routine_list)
    stem_set = set(stem_list)

    audit = DuplicateAudit(routines=len(routine_list), sql_files=len(stem_list))

    for routine in routine_list:
        if routine in stem_set:
            audit.exact_matches.append(routine)
            continue
        bare = routine[len(SP_PREFIX) :] if routine.startswith(SP_PREFIX) else routine
        if bare != routine and bare in stem_set:
            audit.functional_duplicates.append(FunctionalDuplicate(routine=routine, sql_file=bare))
        else:
            audit.db_only.append(routine)

    for stem in stem_list:
        procedure = stem[len(CALL_PREFIX) :]
        if stem.startswith(CALL_PREFIX + SP_PREFIX) and procedure in routine_set:
            audit.call_wrappers.append(CallWrapper(sql_file=stem, procedure=procedure))
        elif stem not in routine_set and (SP_PREFIX + stem) not in routine_set:
            audit.sql_only.append(stem)

    keywords = [k.lower() for k in keep_keywords]
    audit.keep = [r for r in audit.db_only if any(k in r.lower() for k in keywords)]
    return audit
