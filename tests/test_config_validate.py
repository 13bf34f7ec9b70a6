import tempfile
import unittest
from pathlib import Path

from sqlsum.config import SEVERITY_ERROR, SEVERITY_WARN, load_config, resolve_layout
from sqlsum.observability.config import load_observability_config
from sqlsum.runtime.config import validate_config_file
from sqlsum.runtime.paths import discover_repo_root
from sqlsum.verify.verifier import VerifyPolicy
from tests.sql_fixture import write_config


class TestConfig(unittest.TestCase):
    def test_sample_config_is_valid(self) -> None:
        repo_root = Path(__file__).resolve().parents[1]
        cfg_path = repo_root / "configs" / "sample.yaml"
        validate_config_file(path=cfg_path)

        cfg = load_config(path=cfg_path)
        self.assertEqual(cfg.project_name, "sample")
        self.assertTrue(cfg.config_sha256.startswith("sha256:"))
        self.assertEqual(cfg.codegen.command[:2], ("npx", "pgtyped"))
        self.assertEqual(cfg.audit.routines_path, "data/samples/db_routines.txt")

        layout = resolve_layout(cfg, repo_root=repo_root)
        self.assertEqual(layout.queries_dir, repo_root / "data" / "samples" / "queries")
        self.assertEqual(layout.types_suffix, ".types.ts")

    def test_defaults_apply_to_minimal_config(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(path=write_config(Path(td)))
            obs = load_observability_config(path=Path(td) / "sqlsum.yaml")

        self.assertEqual(cfg.layout.sql_suffix, ".sql")
        self.assertEqual(cfg.verify.banner_drift, SEVERITY_ERROR)
        self.assertEqual(cfg.verify.manifest_drift, SEVERITY_WARN)
        self.assertTrue(cfg.verify.lint_enabled)
        self.assertEqual(cfg.codegen.command, ())
        self.assertTrue(cfg.codegen.clean_before_generate)
        self.assertIsNone(cfg.audit.routines_path)
        self.assertFalse(obs.metrics_enabled)
        self.assertIsNone(obs.events_dir)

        policy = VerifyPolicy.from_config(cfg.verify)
        self.assertEqual(policy, VerifyPolicy())

    def test_invalid_values_name_the_config_path(self) -> None:
        cases = [
            ("layout:\n  queries_dir: q\n", "project"),
            ("project:\n  name: x\nlayout:\n  queries_dir: q\n  types_dir: t\n", "layout.manifest_path"),
            (
                "project:\n  name: x\nlayout:\n  queries_dir: q\n  types_dir: t\n  manifest_path: m.json\n"
                "verify:\n  banner_drift: loud\n",
                "verify.banner_drift",
            ),
            (
                "project:\n  name: x\nlayout:\n  queries_dir: q\n  types_dir: t\n  manifest_path: m.json\n"
                "codegen:\n  command: npx pgtyped\n",
                "codegen.command",
            ),
        ]
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "sqlsum.yaml"
            for text, needle in cases:
                p.write_text(text, encoding="utf-8")
                with self.assertRaises(ValueError) as cm:
                    load_config(path=p)
                self.assertIn(needle, str(cm.exception))

    def test_metrics_textfile_requires_metrics(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = write_config(Path(td), extra="observability:\n  metrics_textfile: out/metrics.prom\n")
            with self.assertRaises(ValueError):
                validate_config_file(path=p)

    def test_discover_repo_root(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td).resolve()
            write_config(root)
            nested = root / "db" / "queries" / "users"
            nested.mkdir(parents=True)
            self.assertEqual(discover_repo_root(nested), root)
            with self.assertRaises(RuntimeError):
                discover_repo_root(nested, config_name="missing.yaml")


if __name__ == "__main__":
    unittest.main()
