from __future__ import annotations

from pathlib import Path
from typing import Optional

from sqlsum.config import Layout

QUERIES_DIR = "db/queries"
TYPES_DIR = "db/types"
MANIFEST_PATH = "db/sql-checksums.json"


def pascal_case(stem: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in stem.split("_") if part)


def type_file_text(stem: str) -> str:
    name = pascal_case(stem)
    var = name[:1].lower() + name[1:]
    return (
        f'/** Types generated for queries found in "{stem}.sql" */\n'
        "import { PreparedQuery } from '@pgtyped/runtime';\n"
        "\n"
        f"/** '{name}' parameters type */\n"
        f"export type I{name}Params = void;\n"
        "\n"
        f"/** '{name}' return type */\n"
        f"export interface I{name}Result {{\n"
        "  id: number;\n"
        "}\n"
        "\n"
        f"const {var}IR: any = {{}};\n"
        "\n"
        f"export const {var} = new PreparedQuery<I{name}Params,I{name}Result>({var}IR);\n"
    )


def sql_text(stem: str, body: str) -> str:
    return f"/* @name {pascal_case(stem)} */\n{body}\n"


def make_layout(root: Path) -> Layout:
    return Layout(
        repo_root=root,
        queries_dir=root / QUERIES_DIR,
        types_dir=root / TYPES_DIR,
        manifest_path=root / MANIFEST_PATH,
    )


def write_query(layout: Layout, rel: str, body: str, *, with_types: bool = True) -> Path:
    """Write ``<queries_dir>/<rel>`` and, optionally, its bannerless type file."""

    path = layout.queries_dir / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    stem = path.name[: -len(layout.sql_suffix)]
    path.write_text(sql_text(stem, body), encoding="utf-8")
    if with_types:
        layout.types_dir.mkdir(parents=True, exist_ok=True)
        (layout.types_dir / f"{stem}{layout.types_suffix}").write_text(type_file_text(stem), encoding="utf-8")
    return path


def make_repo(root: Path, queries: dict[str, str]) -> Layout:
    layout = make_layout(root)
    layout.queries_dir.mkdir(parents=True, exist_ok=True)
    layout.types_dir.mkdir(parents=True, exist_ok=True)
    for rel, body in queries.items():
        write_query(layout, rel, body)
    return layout


def write_config(
    root: Path,
    *,
    name: str = "sqlsum.yaml",
    codegen_command: Optional[list[str]] = None,
    extra: str = "",
) -> Path:
    lines = [
        "project:",
        "  name: fixture",
        "layout:",
        f"  queries_dir: {QUERIES_DIR}",
        f"  types_dir: {TYPES_DIR}",
        f"  manifest_path: {MANIFEST_PATH}",
    ]
    if codegen_command is not None:
        lines.append("codegen:")
        lines.append("  command:")
        lines.extend(f"    - {arg!r}" for arg in codegen_command)
    path = root / name
    path.write_text("\n".join(lines) + "\n" + extra, encoding="utf-8")
    return path
