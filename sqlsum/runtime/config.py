from __future__ import annotations

from pathlib import Path

from sqlsum.config import load_config
from sqlsum.observability.config import load_observability_config


def validate_config_file(*, path: Path) -> None:
    _ = load_config(path=path)
    _ = load_observability_config(path=path)
