from __future__ import annotations

import re
from pathlib import Path

_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)


def tool_root() -> Path:
    return Path(__file__).resolve().parents[1]


def read_repo_version(*, repo_root: Path) -> str:
    path = repo_root / "VERSION"
    if not path.is_file():
        raise FileNotFoundError(f"VERSION file not found at {repo_root.as_posix()}")
    version = path.read_text(encoding="utf-8").strip()
    if not version:
        raise ValueError("VERSION file is empty")
    if _SEMVER_RE.match(version) is None:
        raise ValueError(f"VERSION is not valid SemVer: {version}")
    return version
