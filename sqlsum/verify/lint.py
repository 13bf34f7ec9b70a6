"""Heuristic scan for SQL that looks assembled by string building.

Advisory only: a match means "have a look", never "this is injectable", and
a clean result proves nothing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

SUSPICIOUS_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("template-interpolation", re.compile(r"\$\{\w+\}")),
    ("concat-before-quote", re.compile(r"[^$]\+\s*['\"`]")),
    ("concat-after-quote", re.compile(r"['\"`]\s*\+")),
    ("eval-call", re.compile(r"eval\s*\(")),
    ("exec-call", re.compile(r"exec\s*\(")),
)


LABEL_UNREADABLE = "unreadable"


@dataclass(frozen=True)
class LintFinding:
    file: str
    label: str
    pattern: str
    matches: int

    def describe(self) -> str:
        if self.label == LABEL_UNREADABLE:
            return f"{self.file}: unreadable: {self.pattern}"
        return f"{self.file}: {self.label} /{self.pattern}/ ({self.matches} matches)"


def lint_sql_text(text: str) -> list[tuple[str, str, int]]:
    hits: list[tuple[str, str, int]] = []
    for label, pat in SUSPICIOUS_PATTERNS:
        n = sum(1 for _ in pat.finditer(text))
        if n:
            hits.append((label, pat.pattern, n))
    return hits


def lint_sql_files(paths: Iterable[Path], *, display_name=lambda p: p.name) -> list[LintFinding]:
    findings: list[LintFinding] = []
    for path in paths:
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            findings.append(LintFinding(file=display_name(path), label=LABEL_UNREADABLE, pattern=str(e), matches=0))
            continue
        for label, pattern, n in lint_sql_text(text):
            findings.append(LintFinding(file=display_name(path), label=label, pattern=pattern, matches=n))
    return findings
