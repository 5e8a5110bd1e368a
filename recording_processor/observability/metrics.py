"""Per-stage processing metrics.

Provides StageMetrics for structured observability data, StageTimer for
measuring stage durations, and log_stage_metrics() for emitting one JSON
line per stage run to stdout.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime


@dataclass
class StageMetrics:
    """Metrics collected for a single stage run on one recording."""

    recording_id: str
    project_id: str
    stage: str
    status: str
    duration_seconds: float
    attempts: int = 1
    input_size_bytes: int = 0
    output_size_chars: int = 0
    tasks_created: int = 0
    materials_created: int = 0
    error_kind: str | None = None
    error_message: str | None = None


class StageTimer:
    """Context manager that records wall-clock duration of a pipeline stage.

    Usage:
        timer = StageTimer("transcription")
        with timer:
            await do_work()
        print(timer.duration_seconds)
    """

    def __init__(self, stage_name: str) -> None:
        self.stage_name = stage_name
        self.duration_seconds: float = 0.0
        self._mono_start: float = 0.0

    def __enter__(self) -> StageTimer:
        self._mono_start = time.monotonic()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.duration_seconds = time.monotonic() - self._mono_start


def log_stage_metrics(metrics: StageMetrics) -> None:
    """Emit stage metrics as a single structured JSON line to stdout.

    Args:
        metrics: Populated StageMetrics dataclass.
    """
    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "severity": "INFO",
        "metric_type": "stage_completion",
        **asdict(metrics),
    }
    print(json.dumps(entry))
