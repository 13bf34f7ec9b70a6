from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

import yaml

from sqlsum.checksum.scanner import DEFAULT_SQL_SUFFIX, DEFAULT_TYPES_SUFFIX

SEVERITY_ERROR = "error"
SEVERITY_WARN = "warn"
SEVERITIES = (SEVERITY_ERROR, SEVERITY_WARN)

DEFAULT_ANNOTATION_MARKER = "/* @name"
DEFAULT_REQUIRED_TYPE_MARKERS = (
    "import { PreparedQuery } from '@pgtyped/runtime'",
    "PreparedQuery",
)
DEFAULT_KEEP_KEYWORDS = ("stripe", "subscription", "invitation", "webhook", "purchase", "ffc_with")


def _sha256_prefixed(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def _require_dict(obj: Any, *, path: str) -> dict[str, Any]:
    if not isinstance(obj, dict):
        raise ValueError(f"{path} must be a mapping")
    return obj


def _require_str(obj: Any, *, path: str) -> str:
    if not isinstance(obj, str) or not obj:
        raise ValueError(f"{path} must be a non-empty string")
    return obj


def _require_bool(obj: Any, *, path: str) -> bool:
    if not isinstance(obj, bool):
        raise ValueError(f"{path} must be a boolean")
    return obj


def _require_str_list(obj: Any, *, path: str) -> tuple[str, ...]:
    if not isinstance(obj, list) or not all(isinstance(x, str) and x for x in obj):
        raise ValueError(f"{path} must be a list of non-empty strings")
    return tuple(obj)


def _require_severity(obj: Any, *, path: str) -> str:
    value = _require_str(obj, path=path)
    if value not in SEVERITIES:
        raise ValueError(f"{path} must be one of: {', '.join(SEVERITIES)}")
    return value


def _optional_str(obj: Any, *, path: str) -> Optional[str]:
    if obj is None:
        return None
    return _require_str(obj, path=path)


@dataclass(frozen=True)
class LayoutConfig:
    queries_dir: str
    types_dir: str
    manifest_path: str
    sql_suffix: str
    types_suffix: str


@dataclass(frozen=True)
class Layout:
    """Layout paths resolved against a repository root."""

    repo_root: Path
    queries_dir: Path
    types_dir: Path
    manifest_path: Path
    sql_suffix: str = DEFAULT_SQL_SUFFIX
    types_suffix: str = DEFAULT_TYPES_SUFFIX


@dataclass(frozen=True)
class VerifyConfig:
    banner_drift: str
    manifest_drift: str
    lint_enabled: bool


@dataclass(frozen=True)
class CodegenConfig:
    command: Sequence[str]
    annotation_marker: str
    required_type_markers: Sequence[str]
    require_type_export: bool
    clean_before_generate: bool


@dataclass(frozen=True)
class AuditConfig:
    routines_path: Optional[str]
    keep_keywords: Sequence[str]


@dataclass(frozen=True)
class SqlsumConfig:
    project_name: str
    config_path: str
    config_sha256: str
    layout: LayoutConfig
    verify: VerifyConfig
    codegen: CodegenConfig
    audit: AuditConfig


def resolve_repo_path(repo_root: Path, path: str) -> Path:
    p = Path(path)
    return p if p.is_absolute() else (repo_root / p)


def resolve_layout(config: SqlsumConfig, *, repo_root: Path) -> Layout:
    lc = config.layout
    return Layout(
        repo_root=repo_root,
        queries_dir=resolve_repo_path(repo_root, lc.queries_dir),
        types_dir=resolve_repo_path(repo_root, lc.types_dir),
        manifest_path=resolve_repo_path(repo_root, lc.manifest_path),
        sql_suffix=lc.sql_suffix,
        types_suffix=lc.types_suffix,
    )


def load_config(*, path: Path) -> SqlsumConfig:
    data_bytes = path.read_bytes()
    cfg = yaml.safe_load(data_bytes.decode("utf-8"))
    cfg = _require_dict(cfg, path="config")

    project = _require_dict(cfg.get("project"), path="project")
    project_name = _require_str(project.get("name"), path="project.name")

    layout = _require_dict(cfg.get("layout"), path="layout")
    layout_cfg = LayoutConfig(
        queries_dir=_require_str(layout.get("queries_dir"), path="layout.queries_dir"),
        types_dir=_require_str(layout.get("types_dir"), path="layout.types_dir"),
        manifest_path=_require_str(layout.get("manifest_path"), path="layout.manifest_path"),
        sql_suffix=_require_str(layout.get("sql_suffix", DEFAULT_SQL_SUFFIX), path="layout.sql_suffix"),
        types_suffix=_require_str(layout.get("types_suffix", DEFAULT_TYPES_SUFFIX), path="layout.types_suffix"),
    )

    verify = cfg.get("verify") or {}
    verify = _require_dict(verify, path="verify")
    verify_cfg = VerifyConfig(
        banner_drift=_require_severity(verify.get("banner_drift", SEVERITY_ERROR), path="verify.banner_drift"),
        manifest_drift=_require_severity(verify.get("manifest_drift", SEVERITY_WARN), path="verify.manifest_drift"),
        lint_enabled=_require_bool(verify.get("lint_enabled", True), path="verify.lint_enabled"),
    )

    codegen = cfg.get("codegen") or {}
    codegen = _require_dict(codegen, path="codegen")
    command_raw = codegen.get("command", [])
    if not isinstance(command_raw, list) or not all(isinstance(x, str) and x for x in command_raw):
        raise ValueError("codegen.command must be a list of non-empty strings")
    codegen_cfg = CodegenConfig(
        command=tuple(command_raw),
        annotation_marker=_require_str(
            codegen.get("annotation_marker", DEFAULT_ANNOTATION_MARKER), path="codegen.annotation_marker"
        ),
        required_type_markers=_require_str_list(
            codegen.get("required_type_markers", list(DEFAULT_REQUIRED_TYPE_MARKERS)),
            path="codegen.required_type_markers",
        ),
        require_type_export=_require_bool(
            codegen.get("require_type_export", True), path="codegen.require_type_export"
        ),
        clean_before_generate=_require_bool(
            codegen.get("clean_before_generate", True), path="codegen.clean_before_generate"
        ),
    )

    audit = cfg.get("audit") or {}
    audit = _require_dict(audit, path="audit")
    audit_cfg = AuditConfig(
        routines_path=_optional_str(audit.get("routines_path"), path="audit.routines_path"),
        keep_keywords=_require_str_list(
            audit.get("keep_keywords", list(DEFAULT_KEEP_KEYWORDS)), path="audit.keep_keywords"
        ),
    )

    return SqlsumConfig(
        project_name=project_name,
        config_path=path.as_posix(),
        config_sha256=_sha256_prefixed(data_bytes),
        layout=layout_cfg,
        verify=verify_cfg,
        codegen=codegen_cfg,
        audit=audit_cfg,
    )
