#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sqlsum.audit.duplicates import audit_duplicates, load_routine_names
from sqlsum.checksum.generate import ChecksumGenerator
from sqlsum.checksum.manifest import repo_relative
from sqlsum.checksum.scanner import find_sql_files, stem_of
from sqlsum.codegen.build import CODEGEN_NOT_CONFIGURED, TypeBuildRunner
from sqlsum.config import Layout, SqlsumConfig, load_config, resolve_layout, resolve_repo_path
from sqlsum.observability.config import ObservabilityConfig, load_observability_config
from sqlsum.observability.file_observability_log import FileObservabilityLogger
from sqlsum.observability.metrics import write_metrics_textfile
from sqlsum.observability.stage import StageRecorder
from sqlsum.observability.tracing import init_tracing
from sqlsum.runtime.config import validate_config_file
from sqlsum.runtime.paths import DEFAULT_CONFIG_NAME, discover_repo_root
from sqlsum.verify.checks import REMEDIATION, SEVERITY_ADVISORY, DriftError, check_existence
from sqlsum.verify.lint import lint_sql_files
from sqlsum.verify.verifier import ChecksumVerifier, VerifyPolicy
from sqlsum.version import read_repo_version, tool_root

EXIT_OK = 0
EXIT_INVALID_INPUT = 10
EXIT_STRUCTURAL = 20
EXIT_DEPENDENCY_UNAVAILABLE = 40
EXIT_VERIFICATION_FAILED = 60

MAX_LINES = 200


@dataclass(frozen=True)
class CommandContext:
    repo_root: Path
    config_path: Path
    config: SqlsumConfig
    layout: Layout
    observability: ObservabilityConfig
    run_id: str

    def recorder(self, *, command: str) -> StageRecorder:
        obs_logger = None
        if self.observability.events_dir is not None:
            obs_logger = FileObservabilityLogger(
                base_dir=resolve_repo_path(self.repo_root, self.observability.events_dir)
            )
        return StageRecorder(
            command=command,
            run_id=self.run_id,
            obs_logger=obs_logger,
            metrics_enabled=self.observability.metrics_enabled,
        )

    def flush_metrics(self) -> None:
        if self.observability.metrics_textfile is not None:
            write_metrics_textfile(resolve_repo_path(self.repo_root, self.observability.metrics_textfile))


def _resolve_repo_root(args: argparse.Namespace) -> Path:
    if args.repo_root is not None:
        return Path(args.repo_root).resolve()
    try:
        return discover_repo_root(Path.cwd().resolve(), config_name=args.config)
    except RuntimeError:
        return Path.cwd().resolve()


def _load_context(args: argparse.Namespace, *, token: str) -> Optional[CommandContext]:
    repo_root = _resolve_repo_root(args)
    cfg_path = resolve_repo_path(repo_root, args.config)
    if not cfg_path.is_file():
        print(f"{token}_FAILED: missing config: {cfg_path.as_posix()}")
        return None
    try:
        config = load_config(path=cfg_path)
        observability = load_observability_config(path=cfg_path)
    except Exception as e:
        print(f"{token}_FAILED: invalid config: {e}")
        return None

    init_tracing(enabled=observability.tracing_enabled, service_name=f"sqlsum:{config.project_name}")
    return CommandContext(
        repo_root=repo_root,
        config_path=cfg_path,
        config=config,
        layout=resolve_layout(config, repo_root=repo_root),
        observability=observability,
        run_id=args.run_id or str(uuid.uuid4()),
    )


def _print_list(header: str, items: list[str]) -> None:
    print(header)
    for item in items[:MAX_LINES]:
        print(item)
    if len(items) > MAX_LINES:
        print(f"({len(items) - MAX_LINES} more)")


def cmd_checksums_generate(args: argparse.Namespace) -> int:
    ctx = _load_context(args, token="CHECKSUM_GENERATE")
    if ctx is None:
        return EXIT_INVALID_INPUT
    layout = ctx.layout
    if not layout.queries_dir.is_dir():
        print(f"CHECKSUM_GENERATE_FAILED: queries directory does not exist: {layout.queries_dir.as_posix()}")
        return EXIT_INVALID_INPUT

    generator = ChecksumGenerator(
        layout=layout,
        recorder=ctx.recorder(command="checksums-generate"),
        metrics_enabled=ctx.observability.metrics_enabled,
    )
    report = generator.run()
    ctx.flush_metrics()

    for p in report.types_not_found:
        print(f"TYPE_FILE_NOT_FOUND: {p.name}")

    if not report.ok:
        _print_list("CHECKSUM_GENERATE_FAILED", report.failures)
        return EXIT_VERIFICATION_FAILED

    print(
        "CHECKSUM_GENERATE_OK: "
        f"sql_files={report.hashed} "
        f"banners_updated={len(report.banners_updated)} "
        f"banners_unchanged={len(report.banners_unchanged)} "
        f"manifest={repo_relative(layout.manifest_path, repo_root=layout.repo_root)}"
    )
    return EXIT_OK


def cmd_checksums_verify(args: argparse.Namespace) -> int:
    ctx = _load_context(args, token="CHECKSUM_VERIFY")
    if ctx is None:
        return EXIT_INVALID_INPUT

    missing = check_existence(ctx.layout)
    if missing:
        _print_list("CHECKSUM_VERIFY_FAILED: missing inputs", missing)
        return EXIT_INVALID_INPUT

    policy = VerifyPolicy.from_config(ctx.config.verify)
    if args.strict:
        policy = policy.strict()
    elif args.lenient:
        policy = policy.lenient()

    verifier = ChecksumVerifier(
        layout=ctx.layout,
        policy=policy,
        recorder=ctx.recorder(command="checksums-verify"),
        metrics_enabled=ctx.observability.metrics_enabled,
    )
    report = verifier.run()
    ctx.flush_metrics()

    if report.structural_errors:
        _print_list("CHECKSUM_VERIFY_FAILED: structural", report.structural_errors)
        return EXIT_STRUCTURAL

    for check in report.checks:
        if check.ok:
            continue
        if check.failed:
            label = "FAILED"
        elif check.severity == SEVERITY_ADVISORY:
            label = "ADVISORY"
        else:
            label = "WARN"
        _print_list(f"{check.name.upper()}_{label}: {len(check.violations)}", list(check.violations))

    if not report.ok:
        try:
            report.raise_for_drift()
        except DriftError as e:
            print(str(e))
        else:
            print(REMEDIATION)
        print("CHECKSUM_VERIFY_FAILED")
        return EXIT_VERIFICATION_FAILED

    print(f"CHECKSUM_VERIFY_OK: sql_files={report.sql_files} checks={len(report.checks)}")
    return EXIT_OK


def _run_types(args: argparse.Namespace, *, token: str, generate: bool) -> int:
    ctx = _load_context(args, token=token)
    if ctx is None:
        return EXIT_INVALID_INPUT
    if not ctx.layout.queries_dir.is_dir():
        print(f"{token}_FAILED: queries directory does not exist: {ctx.layout.queries_dir.as_posix()}")
        return EXIT_INVALID_INPUT

    runner = TypeBuildRunner(
        layout=ctx.layout,
        codegen=ctx.config.codegen,
        generate=generate,
        recorder=ctx.recorder(command=token.lower().replace("_", "-")),
    )
    report = runner.run()
    ctx.flush_metrics()

    print(f"SQL_FILES: {report.sql_files}")
    print(f"ANNOTATED: {report.annotated}")
    if report.unannotated:
        _print_list(
            f"UNANNOTATED_FILES: {len(report.unannotated)}",
            [repo_relative(p, repo_root=ctx.repo_root) for p in report.unannotated],
        )
    if report.cleaned:
        print(f"TYPE_FILES_CLEANED: {report.cleaned}")
    if report.codegen_error is not None:
        err = report.codegen_error
        print(f"CODEGEN_{err.status}: {err.message}")
        if err.stdout:
            print(err.stdout)
        if err.stderr:
            print(err.stderr)
    print(f"TYPE_FILES: {report.type_files}")
    if report.missing_types:
        _print_list(
            f"MISSING_TYPE_FILES: {len(report.missing_types)}",
            [f"{s}{ctx.layout.types_suffix}" for s in report.missing_types],
        )
    if report.extra_types:
        _print_list(
            f"EXTRA_TYPE_FILES: {len(report.extra_types)}",
            [f"{s}{ctx.layout.types_suffix}" for s in report.extra_types],
        )
    if report.content_errors:
        _print_list(f"TYPE_CONTENT_ERRORS: {len(report.content_errors)}", report.content_errors)

    if report.codegen_error is not None:
        print(f"{token}_FAILED")
        if report.codegen_error.status == CODEGEN_NOT_CONFIGURED:
            return EXIT_INVALID_INPUT
        return EXIT_DEPENDENCY_UNAVAILABLE
    if not report.ok:
        print(f"{token}_FAILED")
        return EXIT_VERIFICATION_FAILED

    print(f"{token}_OK: sql_files={report.sql_files} type_files={report.type_files}")
    if report.generated:
        print('Type files were regenerated; run "sqlsumctl checksums generate" to restore hash banners.')
    return EXIT_OK


def cmd_types_build(args: argparse.Namespace) -> int:
    return _run_types(args, token="TYPES_BUILD", generate=args.generate)


def cmd_types_check(args: argparse.Namespace) -> int:
    return _run_types(args, token="TYPES_CHECK", generate=False)


def cmd_audit_duplicates(args: argparse.Namespace) -> int:
    ctx = _load_context(args, token="AUDIT_DUPLICATES")
    if ctx is None:
        return EXIT_INVALID_INPUT

    routines_arg = args.routines or ctx.config.audit.routines_path
    if routines_arg is None:
        print("AUDIT_DUPLICATES_FAILED: no routine list (use --routines or audit.routines_path)")
        return EXIT_INVALID_INPUT
    routines_path = resolve_repo_path(ctx.repo_root, routines_arg)
    if not routines_path.is_file():
        print(f"AUDIT_DUPLICATES_FAILED: missing routine list: {routines_path.as_posix()}")
        return EXIT_INVALID_INPUT

    layout = ctx.layout
    stems = [
        stem_of(p, suffix=layout.sql_suffix) for p in find_sql_files(layout.queries_dir, suffix=layout.sql_suffix)
    ]
    audit = audit_duplicates(
        routines=load_routine_names(path=routines_path),
        sql_stems=stems,
        keep_keywords=ctx.config.audit.keep_keywords,
    )

    print(f"ROUTINES: {audit.routines}")
    print(f"SQL_FILES: {audit.sql_files}")
    _print_list(f"EXACT_MATCHES: {len(audit.exact_matches)}", audit.exact_matches)
    _print_list(
        f"FUNCTIONAL_DUPLICATES: {len(audit.functional_duplicates)}",
        [f"{d.routine} <-> {d.sql_file}" for d in audit.functional_duplicates],
    )
    _print_list(
        f"CALL_WRAPPERS: {len(audit.call_wrappers)}",
        [f"{w.sql_file} -> {w.procedure}" for w in audit.call_wrappers],
    )
    _print_list(f"DB_ONLY_ROUTINES: {len(audit.db_only)}", audit.db_only)
    _print_list(f"SQL_ONLY_FILES: {len(audit.sql_only)}", audit.sql_only)
    _print_list(f"KEEP_ROUTINES: {len(audit.keep)}", audit.keep)
    if audit.total_duplicates:
        _print_list(f"RECOMMENDED_DROPS: {audit.total_duplicates}", audit.drop_statements())
    print(f"AUDIT_DUPLICATES_OK: duplicates={audit.total_duplicates} call_wrappers={len(audit.call_wrappers)}")
    return EXIT_OK


def cmd_lint_sql(args: argparse.Namespace) -> int:
    ctx = _load_context(args, token="SQL_LINT")
    if ctx is None:
        return EXIT_INVALID_INPUT

    layout = ctx.layout
    sql_files = find_sql_files(layout.queries_dir, suffix=layout.sql_suffix)
    findings = lint_sql_files(sql_files, display_name=lambda p: repo_relative(p, repo_root=layout.repo_root))
    if findings:
        _print_list(f"SQL_LINT_WARN: {len(findings)}", [f.describe() for f in findings])
    print(f"SQL_LINT_OK: files={len(sql_files)} findings={len(findings)}")
    return EXIT_OK


def cmd_config_validate(args: argparse.Namespace) -> int:
    repo_root = _resolve_repo_root(args)
    cfg_path = resolve_repo_path(repo_root, args.config)
    try:
        validate_config_file(path=cfg_path)
    except Exception as e:
        print(f"CONFIG_VALIDATE_FAILED: {e}")
        return EXIT_INVALID_INPUT
    print("CONFIG_VALIDATE_OK")
    return EXIT_OK


def cmd_version(args: argparse.Namespace) -> int:
    try:
        version = read_repo_version(repo_root=tool_root())
    except Exception as e:
        print(f"VERSION_FAILED: {e}")
        return EXIT_VERIFICATION_FAILED
    print(version)
    return EXIT_OK


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--config",
        default=DEFAULT_CONFIG_NAME,
        help="Config file (repo-relative unless absolute).",
    )
    p.add_argument(
        "--repo-root",
        default=None,
        help="Repository root (defaults to the nearest parent of the cwd holding the config).",
    )
    p.add_argument("--run-id", default=None, help="Run id for the event log (defaults to a fresh UUID).")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="sqlsumctl")
    sub = parser.add_subparsers(dest="command", required=True)

    version = sub.add_parser("version")
    version.set_defaults(func=cmd_version)

    config = sub.add_parser("config")
    config_sub = config.add_subparsers(dest="config_command", required=True)
    cfg_validate = config_sub.add_parser("validate")
    _add_common(cfg_validate)
    cfg_validate.set_defaults(func=cmd_config_validate)

    checksums = sub.add_parser("checksums")
    checksums_sub = checksums.add_subparsers(dest="checksums_command", required=True)

    generate = checksums_sub.add_parser("generate", help="Hash SQL files, write banners and the manifest.")
    _add_common(generate)
    generate.set_defaults(func=cmd_checksums_generate)

    verify = checksums_sub.add_parser("verify", help="Check SQL, banners and manifest agree.")
    _add_common(verify)
    mode = verify.add_mutually_exclusive_group()
    mode.add_argument("--strict", action="store_true", help="Fail on banner and manifest drift.")
    mode.add_argument("--lenient", action="store_true", help="Only warn on banner and manifest drift.")
    verify.set_defaults(func=cmd_checksums_verify)

    types = sub.add_parser("types")
    types_sub = types.add_subparsers(dest="types_command", required=True)

    build = types_sub.add_parser("build", help="Regenerate type files and verify the 1:1 mapping.")
    _add_common(build)
    build.add_argument(
        "--no-generate",
        dest="generate",
        action="store_false",
        help="Skip cleaning and codegen; only verify what is on disk.",
    )
    build.set_defaults(func=cmd_types_build)

    check = types_sub.add_parser("check", help="Verify annotations, mapping and type file content.")
    _add_common(check)
    check.set_defaults(func=cmd_types_check)

    audit = sub.add_parser("audit")
    audit_sub = audit.add_subparsers(dest="audit_command", required=True)
    duplicates = audit_sub.add_parser("duplicates", help="Compare database routines with SQL files.")
    _add_common(duplicates)
    duplicates.add_argument("--routines", default=None, help="Routine list, one name per line.")
    duplicates.set_defaults(func=cmd_audit_duplicates)

    lint = sub.add_parser("lint")
    lint_sub = lint.add_subparsers(dest="lint_command", required=True)
    lint_sql = lint_sub.add_parser("sql", help="Advisory scan for string-built SQL.")
    _add_common(lint_sql)
    lint_sql.set_defaults(func=cmd_lint_sql)

    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    sys.exit(main())
