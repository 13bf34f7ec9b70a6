from __future__ import annotations

from pathlib import Path

DEFAULT_CONFIG_NAME = "sqlsum.yaml"


def discover_repo_root(start: Path, *, config_name: str = DEFAULT_CONFIG_NAME) -> Path:
    for p in [start] + list(start.parents):
        if (p / config_name).is_file():
            return p
    raise RuntimeError(f"repository root not found from: {start} (no {config_name})")
