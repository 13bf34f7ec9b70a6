from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlsum.checksum.banner import STATUS_NOT_FOUND, STATUS_UPDATED, BannerWriteResult, write_hash_banner
from sqlsum.checksum.hasher import hash_sql_file
from sqlsum.checksum.manifest import (
    ChecksumEntry,
    ChecksumManifest,
    checksum_entry,
    manifest_from_entries,
    repo_relative,
    save_manifest,
)
from sqlsum.checksum.pairing import pair_files
from sqlsum.checksum.scanner import find_sql_files, list_type_files
from sqlsum.config import Layout
from sqlsum.observability import metrics
from sqlsum.observability.stage import StageRecorder


@dataclass
class GenerationReport:
    sql_files: int = 0
    hashed: int = 0
    banners_updated: list[Path] = field(default_factory=list)
    banners_unchanged: list[Path] = field(default_factory=list)
    types_not_found: list[Path] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)
    manifest: Optional[ChecksumManifest] = None

    @property
    def ok(self) -> bool:
        return self.sql_files > 0 and not self.failures


@dataclass
class ChecksumGenerator:
    """Hash every query file, stamp banners into the type files and rewrite the manifest."""

    layout: Layout
    recorder: Optional[StageRecorder] = None
    metrics_enabled: bool = False
    now: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.recorder is None:
            self.recorder = StageRecorder(command="checksums-generate", run_id="local")

    def _stage(self, name: str):
        assert self.recorder is not None
        return self.recorder.stage(name)

    def run(self) -> GenerationReport:
        report = GenerationReport()
        layout = self.layout

        with self._stage("SCAN") as st:
            sql_files = find_sql_files(layout.queries_dir, suffix=layout.sql_suffix)
            type_files = list_type_files(layout.types_dir, suffix=layout.types_suffix)
            report.sql_files = len(sql_files)
            st.fields.update({"sql_files": len(sql_files), "type_files": len(type_files)})
            if not sql_files:
                st.status = "FAILED"
                report.failures.append(f"no SQL files found under {layout.queries_dir.as_posix()}")
                return report
            if not layout.types_dir.is_dir():
                report.failures.append(f"types directory does not exist: {layout.types_dir.as_posix()}")

        checksums: dict[str, ChecksumEntry] = {}
        hashes: dict[Path, str] = {}
        with self._stage("HASH") as st:
            for path in sql_files:
                try:
                    hashed = hash_sql_file(path)
                except (OSError, UnicodeDecodeError) as e:
                    report.failures.append(f"{path.as_posix()}: failed to hash: {e}")
                    continue
                hashes[path] = hashed.hash
                checksums[repo_relative(path, repo_root=layout.repo_root)] = checksum_entry(hashed)
            report.hashed = len(hashes)
            st.fields["hashed"] = len(hashes)
            if len(hashes) != len(sql_files):
                st.status = "FAILED"
            if self.metrics_enabled:
                metrics.inc_hashed(count=len(hashes))

        with self._stage("BANNER") as st:
            self._write_banners(report=report, sql_files=sql_files, type_files=type_files, hashes=hashes)
            st.fields.update(
                {
                    "updated": len(report.banners_updated),
                    "unchanged": len(report.banners_unchanged),
                    "types_not_found": len(report.types_not_found),
                }
            )
            if report.failures:
                st.status = "FAILED"

        with self._stage("MANIFEST") as st:
            manifest = manifest_from_entries(checksums, now=self.now)
            save_manifest(manifest, path=layout.manifest_path)
            report.manifest = manifest
            st.fields["total_files"] = manifest.total_files
            if self.metrics_enabled:
                metrics.set_manifest_entries(manifest.total_files)

        return report

    def _write_banners(
        self,
        *,
        report: GenerationReport,
        sql_files: list[Path],
        type_files: list[Path],
        hashes: dict[Path, str],
    ) -> None:
        layout = self.layout
        pairing = pair_files(
            sql_files,
            type_files,
            sql_suffix=layout.sql_suffix,
            types_suffix=layout.types_suffix,
            case_sensitive=False,
        )

        ambiguous_sources = {p for paths in pairing.ambiguous_stems.values() for p in paths}
        for stem, paths in sorted(pairing.ambiguous_stems.items()):
            rels = ", ".join(repo_relative(p, repo_root=layout.repo_root) for p in paths)
            report.failures.append(f"ambiguous stem {stem!r}: shared by {rels}")

        for orphan in pairing.orphan_types:
            report.failures.append(f"{orphan.name}: no corresponding SQL file")
            self._count_banner("FAILED")

        for sql_path in sql_files:
            if sql_path in ambiguous_sources or sql_path not in hashes:
                continue
            # case variants of one stem all carry the banner
            type_paths = pairing.type_files_for(sql_path)
            if not type_paths:
                type_paths = [layout.types_dir / (sql_path.name[: -len(layout.sql_suffix)] + layout.types_suffix)]
            for type_path in type_paths:
                try:
                    result = write_hash_banner(path=type_path, sql_hash=hashes[sql_path])
                except (OSError, UnicodeDecodeError) as e:
                    report.failures.append(f"{type_path.name}: failed to update hash banner: {e}")
                    self._count_banner("FAILED")
                    continue
                self._collect(report, result)

    def _collect(self, report: GenerationReport, result: BannerWriteResult) -> None:
        if result.status == STATUS_NOT_FOUND:
            report.types_not_found.append(result.path)
        elif result.status == STATUS_UPDATED:
            report.banners_updated.append(result.path)
        else:
            report.banners_unchanged.append(result.path)
        self._count_banner(result.status)

    def _count_banner(self, result: str) -> None:
        if self.metrics_enabled:
            metrics.inc_banner(result=result)
