from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional


def _require_dict(obj: Any, *, path: str) -> dict[str, Any]:
    if not isinstance(obj, dict):
        raise ValueError(f"{path} must be a mapping")
    return obj


def _require_bool(obj: Any, *, path: str) -> bool:
    if not isinstance(obj, bool):
        raise ValueError(f"{path} must be a boolean")
    return obj


def _optional_str(obj: Any, *, path: str) -> Optional[str]:
    if obj is None:
        return None
    if not isinstance(obj, str) or not obj:
        raise ValueError(f"{path} must be a non-empty string")
    return obj


@dataclass(frozen=True)
class ObservabilityConfig:
    metrics_enabled: bool
    tracing_enabled: bool
    events_dir: Optional[str]
    metrics_textfile: Optional[str]


def load_observability_config(*, path: Path) -> ObservabilityConfig:
    try:
        import yaml
    except Exception as e:  # pragma: no cover
        raise RuntimeError(f"PyYAML dependency unavailable: {e}") from e

    doc = yaml.safe_load(path.read_text(encoding="utf-8"))
    doc = _require_dict(doc, path="config")

    obs = doc.get("observability") or {}
    obs = _require_dict(obs, path="observability")

    metrics_textfile = _optional_str(obs.get("metrics_textfile"), path="observability.metrics_textfile")
    metrics_enabled = _require_bool(obs.get("metrics_enabled", False), path="observability.metrics_enabled")
    if metrics_textfile is not None and not metrics_enabled:
        raise ValueError("observability.metrics_textfile requires observability.metrics_enabled")

    return ObservabilityConfig(
        metrics_enabled=metrics_enabled,
        tracing_enabled=_require_bool(obs.get("tracing_enabled", False), path="observability.tracing_enabled"),
        events_dir=_optional_str(obs.get("events_dir"), path="observability.events_dir"),
        metrics_textfile=metrics_textfile,
    )
