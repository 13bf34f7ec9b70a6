import sys
import tempfile
import unittest
from pathlib import Path

from sqlsum.codegen.build import (
    CODEGEN_FAILED,
    CODEGEN_NOT_CONFIGURED,
    CODEGEN_UNAVAILABLE,
    TypeBuildRunner,
    run_codegen,
    validate_type_file,
)
from sqlsum.config import (
    DEFAULT_ANNOTATION_MARKER,
    DEFAULT_REQUIRED_TYPE_MARKERS,
    CodegenConfig,
)
from tests.sql_fixture import TYPES_DIR, make_repo, type_file_text, write_query

# Stands in for pgtyped: one type file per query, written into the types dir.
FAKE_CODEGEN = """
import pathlib
import sys

sys.path.insert(0, sys.argv[1])
from tests.sql_fixture import type_file_text

root = pathlib.Path.cwd()
out = root / sys.argv[2]
for sql in sorted((root / "db" / "queries").rglob("*.sql")):
    stem = sql.name[: -len(".sql")]
    (out / (stem + ".types.ts")).write_text(type_file_text(stem), encoding="utf-8")
"""

PROJECT_ROOT = str(Path(__file__).resolve().parents[1])


def _codegen(command: list[str], *, clean: bool = True) -> CodegenConfig:
    return CodegenConfig(
        command=tuple(command),
        annotation_marker=DEFAULT_ANNOTATION_MARKER,
        required_type_markers=DEFAULT_REQUIRED_TYPE_MARKERS,
        require_type_export=True,
        clean_before_generate=clean,
    )


def _fake_codegen(root: Path) -> CodegenConfig:
    script = root / "fake_pgtyped.py"
    script.write_text(FAKE_CODEGEN, encoding="utf-8")
    return _codegen([sys.executable, str(script), PROJECT_ROOT, TYPES_DIR])


class TestTypeBuildRunner(unittest.TestCase):
    def test_build_regenerates_and_maps_one_to_one(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            layout = make_repo(root, {"users/get_user.sql": "SELECT 1;", "billing/get_invoice.sql": "SELECT 2;"})
            (layout.types_dir / "removed_query.types.ts").write_text(type_file_text("removed_query"), encoding="utf-8")

            report = TypeBuildRunner(layout=layout, codegen=_fake_codegen(root)).run()

            self.assertTrue(report.ok, report)
            self.assertTrue(report.generated)
            self.assertEqual(report.cleaned, 3)
            self.assertEqual((report.sql_files, report.annotated, report.type_files), (2, 2, 2))
            self.assertFalse((layout.types_dir / "removed_query.types.ts").exists())

    def test_check_only_reports_missing_and_extra_type_files(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            layout = make_repo(root, {"a.sql": "SELECT 1;"})
            write_query(layout, "b.sql", "SELECT 2;", with_types=False)
            (layout.types_dir / "c.types.ts").write_text(type_file_text("c"), encoding="utf-8")

            report = TypeBuildRunner(layout=layout, codegen=_codegen([]), generate=False).run()

            self.assertFalse(report.ok)
            self.assertIsNone(report.codegen_error)
            self.assertEqual(report.missing_types, ["b"])
            self.assertEqual(report.extra_types, ["c"])
            self.assertTrue((layout.types_dir / "c.types.ts").exists())

    def test_unannotated_queries_fail(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            layout = make_repo(root, {"a.sql": "SELECT 1;"})
            (layout.queries_dir / "raw.sql").write_text("SELECT 2;\n", encoding="utf-8")
            (layout.types_dir / "raw.types.ts").write_text(type_file_text("raw"), encoding="utf-8")

            report = TypeBuildRunner(layout=layout, codegen=_codegen([]), generate=False).run()
            self.assertFalse(report.ok)
            self.assertEqual([p.name for p in report.unannotated], ["raw.sql"])
            self.assertEqual(report.annotated, 1)

    def test_type_file_content_is_checked(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            layout = make_repo(root, {"a.sql": "SELECT 1;"})
            (layout.types_dir / "a.types.ts").write_text("export const a = 1;\n", encoding="utf-8")

            report = TypeBuildRunner(layout=layout, codegen=_codegen([]), generate=False).run()
            self.assertFalse(report.ok)
            self.assertTrue(report.mapping_ok)
            self.assertTrue(any("a.types.ts: missing" in e for e in report.content_errors))

    def test_missing_tool_is_unavailable(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            layout = make_repo(root, {"a.sql": "SELECT 1;"})
            report = TypeBuildRunner(
                layout=layout, codegen=_codegen(["sqlsum-no-such-codegen-tool"], clean=False)
            ).run()

            self.assertFalse(report.ok)
            assert report.codegen_error is not None
            self.assertEqual(report.codegen_error.status, CODEGEN_UNAVAILABLE)
            self.assertTrue((layout.types_dir / "a.types.ts").exists())


class TestRunCodegen(unittest.TestCase):
    def test_not_configured(self) -> None:
        err = run_codegen(command=(), cwd=Path.cwd())
        assert err is not None
        self.assertEqual(err.status, CODEGEN_NOT_CONFIGURED)

    def test_non_zero_exit_keeps_output_tail(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            err = run_codegen(
                command=(sys.executable, "-c", "import sys; print('connecting'); sys.stderr.write('boom'); sys.exit(3)"),
                cwd=Path(td),
            )
        assert err is not None
        self.assertEqual(err.status, CODEGEN_FAILED)
        self.assertIn("rc=3", err.message)
        self.assertIn("connecting", err.stdout)
        self.assertIn("boom", err.stderr)

    def test_clean_exit(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            self.assertIsNone(run_codegen(command=(sys.executable, "-c", "pass"), cwd=Path(td)))


class TestValidateTypeFile(unittest.TestCase):
    def test_generated_text_passes(self) -> None:
        self.assertEqual(
            validate_type_file(
                type_file_text("get_user"), required_markers=DEFAULT_REQUIRED_TYPE_MARKERS, require_export=True
            ),
            [],
        )

    def test_missing_exports(self) -> None:
        text = "import { PreparedQuery } from '@pgtyped/runtime';\n"
        problems = validate_type_file(text, required_markers=DEFAULT_REQUIRED_TYPE_MARKERS, require_export=True)
        self.assertEqual(len(problems), 1)
        self.assertIn("export interface", problems[0])
        self.assertEqual(
            validate_type_file(text, required_markers=DEFAULT_REQUIRED_TYPE_MARKERS, require_export=False), []
        )


if __name__ == "__main__":
    unittest.main()
