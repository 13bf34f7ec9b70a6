from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from sqlsum.observability.file_observability_log import FileObservabilityLogger, build_observability_event
from sqlsum.observability.metrics import observe_stage
from sqlsum.observability.tracing import context_for_run_id, start_span


@dataclass
class StageOutcome:
    status: str = "OK"
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass
class StageRecorder:
    """Times a run's stages and reports them to spans, metrics and the event log."""

    command: str
    run_id: str
    obs_logger: Optional[FileObservabilityLogger] = None
    metrics_enabled: bool = False

    @contextmanager
    def stage(self, name: str) -> Iterator[StageOutcome]:
        outcome = StageOutcome()
        t0 = time.perf_counter()
        with start_span(
            f"sqlsum.{self.command}.{name.lower()}",
            context=context_for_run_id(run_id=self.run_id),
            attributes={"sqlsum.run_id": self.run_id, "sqlsum.stage": name},
        ) as span:
            try:
                yield outcome
            except Exception:
                outcome.status = "FAILED"
                raise
            finally:
                dur_ms = int((time.perf_counter() - t0) * 1000)
                span.set_attribute("sqlsum.status", outcome.status)
                self._record(stage=name, outcome=outcome, duration_ms=dur_ms)

    def _record(self, *, stage: str, outcome: StageOutcome, duration_ms: int) -> None:
        if self.metrics_enabled:
            observe_stage(stage=stage, duration_ms=duration_ms, status=outcome.status)

        if self.obs_logger is not None:
            self.obs_logger.append(
                build_observability_event(
                    event_type="STAGE_COMPLETE",
                    command=self.command,
                    stage=stage,
                    run_id=self.run_id,
                    occurred_at=datetime.now(timezone.utc),
                    duration_ms=duration_ms,
                    status=outcome.status,
                    fields=outcome.fields,
                )
            )
