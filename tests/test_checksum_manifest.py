import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from sqlsum.checksum.hasher import hash_sql_file, sql_hash
from sqlsum.checksum.manifest import (
    ManifestParseError,
    ManifestStructureError,
    StructuralError,
    checksum_entry,
    load_manifest,
    manifest_from_entries,
    repo_relative,
    save_manifest,
)


class TestChecksumManifest(unittest.TestCase):
    def test_build_save_and_load(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            q = root / "db" / "queries"
            (q / "users").mkdir(parents=True)
            (q / "users" / "b.sql").write_text("SELECT 2;\n", encoding="utf-8")
            (q / "a.sql").write_text("SELECT 1;\n", encoding="utf-8")

            entries = {
                repo_relative(p, repo_root=root): checksum_entry(hash_sql_file(p))
                for p in (q / "users" / "b.sql", q / "a.sql")
            }
            manifest = manifest_from_entries(entries, now=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
            path = root / "out" / "sql-checksums.json"
            save_manifest(manifest, path=path)

            doc = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(doc["generated"], "2026-01-02T03:04:05.000Z")
            self.assertEqual(doc["totalFiles"], 2)
            self.assertEqual(list(doc["checksums"]), ["db/queries/a.sql", "db/queries/users/b.sql"])
            entry = doc["checksums"]["db/queries/users/b.sql"]
            self.assertEqual(entry["hash"], sql_hash("SELECT 2;"))
            self.assertEqual(entry["file"], "b.sql")
            self.assertEqual(entry["size"], 10)
            self.assertTrue(entry["lastModified"].endswith("Z"))

            loaded = load_manifest(path=path)
            self.assertEqual(loaded.total_files, 2)
            self.assertEqual(loaded.hash_for("db/queries/a.sql"), sql_hash("SELECT 1;"))
            self.assertIsNone(loaded.hash_for("db/queries/missing.sql"))
            self.assertFalse((root / "out" / "sql-checksums.json.tmp").exists())

    def test_invalid_json_is_a_parse_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "sql-checksums.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaises(ManifestParseError) as cm:
                load_manifest(path=path)
            self.assertIsInstance(cm.exception, StructuralError)
            self.assertIn("invalid JSON", str(cm.exception))

    def test_wrong_shape_is_a_structure_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "sql-checksums.json"
            path.write_text(
                json.dumps(
                    {
                        "generated": "2026-01-02T03:04:05.000Z",
                        "totalFiles": "1",
                        "checksums": {"db/a.sql": {"hash": "abc", "file": "a.sql"}},
                    }
                ),
                encoding="utf-8",
            )
            with self.assertRaises(ManifestStructureError) as cm:
                load_manifest(path=path)
            msg = str(cm.exception)
            self.assertIn("totalFiles", msg)
            self.assertIn("lastModified", msg)

    def test_each_required_top_level_key(self) -> None:
        full = {"generated": "2026-01-02T03:04:05.000Z", "totalFiles": 0, "checksums": {}}
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "sql-checksums.json"
            for key in ("generated", "totalFiles", "checksums"):
                doc = {k: v for k, v in full.items() if k != key}
                path.write_text(json.dumps(doc), encoding="utf-8")
                with self.assertRaises(ManifestStructureError) as cm:
                    load_manifest(path=path)
                self.assertEqual(len(cm.exception.errors), 1, key)
                self.assertIn(f"'{key}' is a required property", cm.exception.errors[0])

            path.write_text(json.dumps(full), encoding="utf-8")
            self.assertEqual(load_manifest(path=path).total_files, 0)

    def test_checksums_must_be_an_object(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "sql-checksums.json"
            path.write_text('{"generated": "x", "totalFiles": 0, "checksums": []}', encoding="utf-8")
            with self.assertRaises(ManifestStructureError):
                load_manifest(path=path)

    def test_repo_relative_falls_back_outside_root(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            self.assertEqual(repo_relative(root / "db" / "a.sql", repo_root=root), "db/a.sql")
            self.assertEqual(repo_relative(Path("/elsewhere/a.sql"), repo_root=root), "/elsewhere/a.sql")


if __name__ == "__main__":
    unittest.main()
