from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence

from sqlsum.checksum.hasher import is_sha256_hex
from sqlsum.checksum.manifest import ChecksumManifest, repo_relative
from sqlsum.checksum.pairing import Pairing
from sqlsum.config import SEVERITY_ERROR, Layout
from sqlsum.verify.lint import lint_sql_files

SEVERITY_ADVISORY = "advisory"

CHECK_SOURCES = "source_read"
CHECK_COVERAGE = "coverage"
CHECK_BANNER_PRESENCE = "banner_presence"
CHECK_BANNER_FORMAT = "banner_format"
CHECK_BANNER_DRIFT = "banner_drift"
CHECK_MANIFEST_DRIFT = "manifest_drift"
CHECK_MANIFEST_STALE = "manifest_stale_entries"
CHECK_SQL_LINT = "sql_lint"

REMEDIATION = 'Run "sqlsumctl checksums generate" to regenerate checksums.'


@dataclass(frozen=True)
class Drift:
    file: str
    path: str
    computed: str
    stale: str


@dataclass(frozen=True)
class CheckResult:
    name: str
    severity: str
    checked: int
    violations: tuple[str, ...] = ()
    drifts: tuple[Drift, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.violations

    @property
    def failed(self) -> bool:
        return self.severity == SEVERITY_ERROR and bool(self.violations)


class DriftError(AssertionError):
    """All hash mismatches of one verification run, in a single error."""

    def __init__(self, results: Sequence[CheckResult]) -> None:
        self.results = tuple(results)
        self.drifts = tuple(d for r in self.results for d in r.drifts)
        super().__init__(format_drift_message(self.results))


def format_drift_message(results: Sequence[CheckResult]) -> str:
    total = len({d.path for r in results for d in r.drifts})
    lines = [f"Checksum validation failed for {total} files. Runtime SQL does not match its recorded hash. {REMEDIATION}"]
    for r in results:
        stale_label = "Type Hash" if r.name == CHECK_BANNER_DRIFT else "Manifest"
        lines.append(f"[{r.name}]")
        for d in r.drifts:
            lines.append(f"File: {d.file}")
            lines.append(f"  SQL Hash:  {d.computed}")
            lines.append(f"  {stale_label + ':':<10} {d.stale}")
    return "\n".join(lines)


def check_existence(layout: Layout) -> list[str]:
    errors: list[str] = []
    if not layout.queries_dir.is_dir():
        errors.append(f"queries directory does not exist: {layout.queries_dir.as_posix()}")
    if not layout.types_dir.is_dir():
        errors.append(f"types directory does not exist: {layout.types_dir.as_posix()}")
    if not layout.manifest_path.is_file():
        errors.append(f"checksum manifest does not exist: {layout.manifest_path.as_posix()}")
    return errors


def check_sources(sql_files: Sequence[Path], read_errors: Mapping[Path, str]) -> CheckResult:
    violations = tuple(f"{p.as_posix()}: {read_errors[p]}" for p in sorted(read_errors))
    return CheckResult(name=CHECK_SOURCES, severity=SEVERITY_ERROR, checked=len(sql_files), violations=violations)


def check_coverage(*, sql_files: Sequence[Path], pairing: Pairing, layout: Layout) -> CheckResult:
    violations: list[str] = []
    if not sql_files:
        violations.append(f"no SQL files found under {layout.queries_dir.as_posix()}")
    for p in pairing.missing_types:
        violations.append(f"{p.name}: missing type file {p.name[: -len(layout.sql_suffix)]}{layout.types_suffix}")
    for stem, paths in sorted(pairing.ambiguous_stems.items()):
        violations.append(f"{stem}: stem shared by {len(paths)} SQL files: " + ", ".join(p.as_posix() for p in paths))
    return CheckResult(
        name=CHECK_COVERAGE, severity=SEVERITY_ERROR, checked=len(sql_files), violations=tuple(violations)
    )


def check_banner_presence(banners: Mapping[Path, Optional[str]]) -> CheckResult:
    missing = tuple(f"{p.name}: no hash banner" for p, h in sorted(banners.items()) if h is None)
    return CheckResult(name=CHECK_BANNER_PRESENCE, severity=SEVERITY_ERROR, checked=len(banners), violations=missing)


def check_banner_format(banners: Mapping[Path, Optional[str]]) -> CheckResult:
    invalid = tuple(
        f"{p.name}: invalid hash {h!r}" for p, h in sorted(banners.items()) if h is not None and not is_sha256_hex(h)
    )
    return CheckResult(name=CHECK_BANNER_FORMAT, severity=SEVERITY_ERROR, checked=len(banners), violations=invalid)


def check_banner_drift(
    *,
    pairing: Pairing,
    banners: Mapping[Path, Optional[str]],
    source_hashes: Mapping[Path, str],
    layout: Layout,
    severity: str,
) -> CheckResult:
    drifts: list[Drift] = []
    checked = 0
    for sql_path, type_path in sorted(pairing.pairs.items()):
        computed = source_hashes.get(sql_path)
        banner = banners.get(type_path)
        if computed is None or banner is None:
            continue
        checked += 1
        if computed != banner:
            drifts.append(
                Drift(
                    file=sql_path.name,
                    path=repo_relative(sql_path, repo_root=layout.repo_root),
                    computed=computed,
                    stale=banner,
                )
            )
    return _drift_result(CHECK_BANNER_DRIFT, severity, checked, drifts, stale_label="type")


def check_manifest_drift(
    *,
    manifest: ChecksumManifest,
    source_rel_paths: Mapping[Path, str],
    source_hashes: Mapping[Path, str],
    severity: str,
) -> CheckResult:
    """Compare fresh hashes against the manifest.

    Query files without a manifest entry are not yet tracked and are skipped.
    """

    drifts: list[Drift] = []
    checked = 0
    for sql_path in sorted(source_hashes):
        rel = source_rel_paths[sql_path]
        recorded = manifest.hash_for(rel)
        if recorded is None:
            continue
        checked += 1
        computed = source_hashes[sql_path]
        if computed != recorded:
            drifts.append(Drift(file=sql_path.name, path=rel, computed=computed, stale=recorded))
    return _drift_result(CHECK_MANIFEST_DRIFT, severity, checked, drifts, stale_label="manifest")


def _drift_result(name: str, severity: str, checked: int, drifts: list[Drift], *, stale_label: str) -> CheckResult:
    violations = tuple(f"{d.file}: sql={d.computed} {stale_label}={d.stale}" for d in drifts)
    return CheckResult(name=name, severity=severity, checked=checked, violations=violations, drifts=tuple(drifts))


def check_stale_manifest_entries(*, manifest: ChecksumManifest, source_rel_paths: Iterable[str]) -> CheckResult:
    on_disk = set(source_rel_paths)
    stale = tuple(f"{rel}: in manifest but no longer on disk" for rel in sorted(manifest.checksums) if rel not in on_disk)
    return CheckResult(
        name=CHECK_MANIFEST_STALE, severity=SEVERITY_ADVISORY, checked=len(manifest.checksums), violations=stale
    )


def check_sql_lint(sql_files: Sequence[Path], read_errors: Optional[Mapping[Path, str]] = None) -> CheckResult:
    unreadable = read_errors or {}
    findings = lint_sql_files([p for p in sql_files if p not in unreadable])
    return CheckResult(
        name=CHECK_SQL_LINT,
        severity=SEVERITY_ADVISORY,
        checked=len(sql_files),
        violations=tuple(f.describe() for f in findings),
    )
