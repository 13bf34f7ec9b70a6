from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from sqlsum.checksum.banner import extract_banner_hash
from sqlsum.checksum.hasher import sql_hash
from sqlsum.checksum.manifest import ChecksumManifest, StructuralError, load_manifest, repo_relative
from sqlsum.checksum.pairing import pair_files
from sqlsum.checksum.scanner import find_sql_files, list_type_files
from sqlsum.config import SEVERITY_ERROR, SEVERITY_WARN, Layout, VerifyConfig
from sqlsum.observability import metrics
from sqlsum.observability.stage import StageRecorder
from sqlsum.verify.checks import (
    CHECK_BANNER_DRIFT,
    CHECK_MANIFEST_DRIFT,
    CheckResult,
    DriftError,
    check_banner_drift,
    check_banner_format,
    check_banner_presence,
    check_coverage,
    check_existence,
    check_manifest_drift,
    check_sources,
    check_sql_lint,
    check_stale_manifest_entries,
)


@dataclass(frozen=True)
class VerifyPolicy:
    """Severity of each drift check, chosen by whoever runs the verification."""

    banner_drift: str = SEVERITY_ERROR
    manifest_drift: str = SEVERITY_WARN
    lint_enabled: bool = True

    @classmethod
    def from_config(cls, cfg: VerifyConfig) -> "VerifyPolicy":
        return cls(banner_drift=cfg.banner_drift, manifest_drift=cfg.manifest_drift, lint_enabled=cfg.lint_enabled)

    def strict(self) -> "VerifyPolicy":
        return VerifyPolicy(banner_drift=SEVERITY_ERROR, manifest_drift=SEVERITY_ERROR, lint_enabled=self.lint_enabled)

    def lenient(self) -> "VerifyPolicy":
        return VerifyPolicy(banner_drift=SEVERITY_WARN, manifest_drift=SEVERITY_WARN, lint_enabled=self.lint_enabled)


@dataclass
class VerificationReport:
    structural_errors: list[str] = field(default_factory=list)
    checks: list[CheckResult] = field(default_factory=list)
    sql_files: int = 0

    @property
    def ok(self) -> bool:
        return not self.structural_errors and not any(c.failed for c in self.checks)

    def check(self, name: str) -> Optional[CheckResult]:
        for c in self.checks:
            if c.name == name:
                return c
        return None

    def raise_for_drift(self) -> None:
        failing = [
            c
            for c in self.checks
            if c.name in (CHECK_BANNER_DRIFT, CHECK_MANIFEST_DRIFT) and c.failed and c.drifts
        ]
        if failing:
            raise DriftError(failing)


@dataclass
class ChecksumVerifier:
    """Re-derive source, banner and manifest hashes and diff them.

    Every check runs to completion and keeps all of its findings. Missing
    directories and a malformed manifest stop the run before any check.
    """

    layout: Layout
    policy: VerifyPolicy = field(default_factory=VerifyPolicy)
    recorder: Optional[StageRecorder] = None
    metrics_enabled: bool = False

    def __post_init__(self) -> None:
        if self.recorder is None:
            self.recorder = StageRecorder(command="checksums-verify", run_id="local")

    def run(self) -> VerificationReport:
        report = VerificationReport()
        layout = self.layout
        assert self.recorder is not None

        with self.recorder.stage("VERIFY_STRUCTURE") as st:
            report.structural_errors.extend(check_existence(layout))
            manifest: Optional[ChecksumManifest] = None
            if layout.manifest_path.is_file():
                try:
                    manifest = load_manifest(path=layout.manifest_path)
                except StructuralError as e:
                    report.structural_errors.append(str(e))
            st.fields["errors"] = len(report.structural_errors)
            if report.structural_errors:
                st.status = "FAILED"
                self._count("structure", SEVERITY_ERROR, len(report.structural_errors))
                return report
        assert manifest is not None
        if self.metrics_enabled:
            metrics.set_manifest_entries(manifest.total_files)

        with self.recorder.stage("VERIFY_SCAN") as st:
            sql_files = find_sql_files(layout.queries_dir, suffix=layout.sql_suffix)
            type_files = list_type_files(layout.types_dir, suffix=layout.types_suffix)
            pairing = pair_files(
                sql_files,
                type_files,
                sql_suffix=layout.sql_suffix,
                types_suffix=layout.types_suffix,
                case_sensitive=True,
            )
            report.sql_files = len(sql_files)
            st.fields.update({"sql_files": len(sql_files), "type_files": len(type_files), "pairs": len(pairing.pairs)})

            source_hashes: dict[Path, str] = {}
            read_errors: dict[Path, str] = {}
            for path in sql_files:
                try:
                    source_hashes[path] = sql_hash(path.read_bytes().decode("utf-8"))
                except (OSError, UnicodeDecodeError) as e:
                    read_errors[path] = str(e)

            banners: dict[Path, Optional[str]] = {}
            for type_path in sorted(set(pairing.pairs.values())):
                try:
                    banners[type_path] = extract_banner_hash(type_path.read_text(encoding="utf-8"))
                except (OSError, UnicodeDecodeError) as e:
                    read_errors[type_path] = str(e)

        rel_paths = {p: repo_relative(p, repo_root=layout.repo_root) for p in sql_files}

        with self.recorder.stage("VERIFY_CHECKS") as st:
            results = [
                check_sources(sql_files, read_errors),
                check_coverage(sql_files=sql_files, pairing=pairing, layout=layout),
                check_banner_presence(banners),
                check_banner_format(banners),
                check_banner_drift(
                    pairing=pairing,
                    banners=banners,
                    source_hashes=source_hashes,
                    layout=layout,
                    severity=self.policy.banner_drift,
                ),
                check_manifest_drift(
                    manifest=manifest,
                    source_rel_paths=rel_paths,
                    source_hashes=source_hashes,
                    severity=self.policy.manifest_drift,
                ),
                check_stale_manifest_entries(manifest=manifest, source_rel_paths=rel_paths.values()),
            ]
            if self.policy.lint_enabled:
                results.append(check_sql_lint(sql_files, read_errors))

            report.checks.extend(results)
            for r in results:
                self._count(r.name, r.severity, len(r.violations))
                st.fields[r.name] = len(r.violations)
            if not report.ok:
                st.status = "FAILED"

        return report

    def _count(self, check: str, severity: str, count: int) -> None:
        if self.metrics_enabled:
            metrics.inc_violations(check=check, severity=severity, count=count)
