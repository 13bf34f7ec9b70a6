from __future__ import annotations

from pathlib import Path

try:
    from prometheus_client import (
        REGISTRY,
        Counter,
        Gauge,
        Histogram,
        write_to_textfile,
    )
except Exception as e:  # pragma: no cover
    raise RuntimeError("prometheus_client is required (see pyproject.toml)") from e


sql_files_hashed_total = Counter(
    "sql_files_hashed_total",
    "Total SQL files read and hashed.",
)

hash_banners_total = Counter(
    "hash_banners_total",
    "Hash banner writes by result (UPDATED, UNCHANGED, NOT_FOUND, FAILED).",
    labelnames=("result",),
)

verification_violations_total = Counter(
    "verification_violations_total",
    "Verification findings by check and severity.",
    labelnames=("check", "severity"),
)

manifest_entries = Gauge(
    "manifest_entries",
    "Entries in the most recently written or loaded checksum manifest.",
)

stage_latency_ms = Histogram(
    "stage_latency_ms",
    "Checksum tooling stage latency in milliseconds.",
    labelnames=("stage", "status"),
    buckets=(1, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)


def observe_stage(*, stage: str, duration_ms: int, status: str) -> None:
    if duration_ms < 0:
        return
    stage_latency_ms.labels(stage=stage, status=status).observe(duration_ms)


def inc_hashed(*, count: int = 1) -> None:
    if count <= 0:
        return
    sql_files_hashed_total.inc(count)


def inc_banner(*, result: str, count: int = 1) -> None:
    if count <= 0:
        return
    hash_banners_total.labels(result=result).inc(count)


def inc_violations(*, check: str, severity: str, count: int) -> None:
    if count <= 0:
        return
    verification_violations_total.labels(check=check, severity=severity).inc(count)


def set_manifest_entries(count: int) -> None:
    manifest_entries.set(count)


def write_metrics_textfile(path: Path) -> None:
    """Dump the registry in the node_exporter textfile format."""

    path.parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(str(path), REGISTRY)
