from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from sqlsum.checksum.pairing import pair_files
from sqlsum.checksum.scanner import find_sql_files, list_type_files, stem_of
from sqlsum.config import CodegenConfig, Layout
from sqlsum.observability.stage import StageRecorder

CODEGEN_NOT_CONFIGURED = "NOT_CONFIGURED"
CODEGEN_UNAVAILABLE = "UNAVAILABLE"
CODEGEN_FAILED = "FAILED"


def _tail(text: Optional[str], *, lines: int = 20) -> str:
    if not text:
        return ""
    return "\n".join(text.splitlines()[-lines:])


@dataclass(frozen=True)
class CodegenError:
    status: str
    message: str
    stdout: str = ""
    stderr: str = ""


def run_codegen(*, command: tuple[str, ...], cwd: Path) -> Optional[CodegenError]:
    """Run the external SQL-to-types generator; None means it exited cleanly."""

    if not command:
        return CodegenError(status=CODEGEN_NOT_CONFIGURED, message="codegen.command is not configured")
    try:
        cp = subprocess.run(list(command), cwd=str(cwd), capture_output=True, text=True, check=False)
    except FileNotFoundError as e:
        return CodegenError(status=CODEGEN_UNAVAILABLE, message=f"codegen tool not found: {e}")
    except OSError as e:
        return CodegenError(status=CODEGEN_UNAVAILABLE, message=f"failed to run codegen tool: {e}")
    if cp.returncode != 0:
        return CodegenError(
            status=CODEGEN_FAILED,
            message=f"codegen exited with rc={cp.returncode}",
            stdout=_tail(cp.stdout),
            stderr=_tail(cp.stderr),
        )
    return None


def find_unannotated(sql_files: list[Path], *, marker: str) -> list[Path]:
    out: list[Path] = []
    for p in sql_files:
        if marker not in p.read_text(encoding="utf-8", errors="replace"):
            out.append(p)
    return out


def validate_type_file(text: str, *, required_markers: tuple[str, ...], require_export: bool) -> list[str]:
    problems: list[str] = []
    for marker in required_markers:
        if marker not in text:
            problems.append(f"missing {marker!r}")
    if require_export and "export interface" not in text and "export type" not in text:
        problems.append("missing type definitions (export interface / export type)")
    return problems


@dataclass
class TypeBuildReport:
    sql_files: int = 0
    annotated: int = 0
    unannotated: list[Path] = field(default_factory=list)
    cleaned: int = 0
    generated: bool = False
    codegen_error: Optional[CodegenError] = None
    type_files: int = 0
    missing_types: list[str] = field(default_factory=list)
    extra_types: list[str] = field(default_factory=list)
    content_errors: list[str] = field(default_factory=list)

    @property
    def mapping_ok(self) -> bool:
        return self.sql_files == self.annotated == self.type_files and not self.missing_types

    @property
    def ok(self) -> bool:
        return (
            self.sql_files > 0
            and not self.unannotated
            and self.codegen_error is None
            and self.mapping_ok
            and not self.content_errors
        )


@dataclass
class TypeBuildRunner:
    """Annotation coverage, type generation, 1:1 mapping and content checks."""

    layout: Layout
    codegen: CodegenConfig
    generate: bool = True
    recorder: Optional[StageRecorder] = None

    def __post_init__(self) -> None:
        if self.recorder is None:
            self.recorder = StageRecorder(command="types-build", run_id="local")

    def run(self) -> TypeBuildReport:
        assert self.recorder is not None
        report = TypeBuildReport()
        layout = self.layout

        with self.recorder.stage("DISCOVER") as st:
            sql_files = find_sql_files(layout.queries_dir, suffix=layout.sql_suffix)
            report.sql_files = len(sql_files)
            st.fields["sql_files"] = len(sql_files)
            if not sql_files:
                st.status = "FAILED"
                return report

        with self.recorder.stage("ANNOTATIONS") as st:
            report.unannotated = find_unannotated(sql_files, marker=self.codegen.annotation_marker)
            report.annotated = len(sql_files) - len(report.unannotated)
            st.fields["unannotated"] = len(report.unannotated)
            if report.unannotated:
                st.status = "FAILED"

        if self.generate:
            with self.recorder.stage("GENERATE") as st:
                if self.codegen.command and self.codegen.clean_before_generate:
                    for p in list_type_files(layout.types_dir, suffix=layout.types_suffix):
                        p.unlink()
                        report.cleaned += 1
                layout.types_dir.mkdir(parents=True, exist_ok=True)
                report.codegen_error = run_codegen(command=tuple(self.codegen.command), cwd=layout.repo_root)
                report.generated = report.codegen_error is None
                st.fields["cleaned"] = report.cleaned
                if report.codegen_error is not None:
                    st.status = "FAILED"
                    st.fields["codegen_status"] = report.codegen_error.status

        type_files = list_type_files(layout.types_dir, suffix=layout.types_suffix)
        report.type_files = len(type_files)

        with self.recorder.stage("MAPPING") as st:
            pairing = pair_files(
                sql_files,
                type_files,
                sql_suffix=layout.sql_suffix,
                types_suffix=layout.types_suffix,
                case_sensitive=True,
            )
            report.missing_types = sorted({stem_of(p, suffix=layout.sql_suffix) for p in pairing.missing_types})
            report.extra_types = sorted(stem_of(p, suffix=layout.types_suffix) for p in pairing.orphan_types)
            st.fields.update({"missing": len(report.missing_types), "extra": len(report.extra_types)})
            if not report.mapping_ok:
                st.status = "FAILED"

        with self.recorder.stage("CONTENT") as st:
            for p in type_files:
                text = p.read_text(encoding="utf-8", errors="replace")
                for problem in validate_type_file(
                    text,
                    required_markers=tuple(self.codegen.required_type_markers),
                    require_export=self.codegen.require_type_export,
                ):
                    report.content_errors.append(f"{p.name}: {problem}")
            st.fields["errors"] = len(report.content_errors)
            if report.content_errors:
                st.status = "FAILED"

        return report
