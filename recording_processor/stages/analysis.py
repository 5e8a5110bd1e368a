"""Analysis stage: transcript -> LLM -> validated tasks/materials/offer.

The worker's reply is parsed as strict JSON after trimming whitespace and a
single surrounding Markdown code fence. Nothing is coerced or defaulted: any
missing field or out-of-range value raises ValidationError before a single
row is written. Persistence is one transactional RPC, so a run either
stores its whole batch or nothing.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

from recording_processor.llm.interface import TextGenerationEngine
from recording_processor.llm.prompts import ANALYSIS_SYSTEM_PROMPT
from recording_processor.models import (
    AnalysisResult,
    Assignee,
    MaterialDraft,
    OfferDraft,
    Recording,
    RecordingStatus,
    TaskDraft,
)
from recording_processor.storage.record_store import RecordStore
from recording_processor.utils.errors import PreconditionError, ValidationError
from recording_processor.utils.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

STAGE = "analysis"

_FENCE = re.compile(r"^```[A-Za-z0-9_-]*\s*\n(?P<body>.*)\n\s*```$", re.DOTALL)


def parse_analysis(content: str) -> dict[str, Any]:
    """Parse the worker's reply into a JSON object.

    Raises:
        ValidationError: If the reply is not a JSON object.
    """
    text = content.strip()
    match = _FENCE.match(text)
    if match:
        text = match.group("body").strip()

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError(
            f"Analysis response is not valid JSON: {exc.msg} "
            f"(line {exc.lineno}, column {exc.colno})"
        ) from exc

    if not isinstance(payload, dict):
        raise ValidationError(
            f"Analysis response must be a JSON object, got {type(payload).__name__}"
        )
    return payload


def _require_str(item: dict[str, Any], key: str, path: str, allow_empty: bool) -> str:
    value = item.get(key)
    if not isinstance(value, str):
        raise ValidationError(f"{path}.{key} must be a string", field=f"{path}.{key}")
    value = value.strip()
    if not value and not allow_empty:
        raise ValidationError(f"{path}.{key} must not be empty", field=f"{path}.{key}")
    return value


def _require_positive(item: dict[str, Any], key: str, path: str) -> float:
    value = item.get(key)
    # bool is an int subclass; "true" is not a price
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(
            f"{path}.{key} must be a number, got {value!r}", field=f"{path}.{key}"
        )
    if not math.isfinite(value) or value <= 0:
        raise ValidationError(
            f"{path}.{key} must be greater than zero, got {value!r}",
            field=f"{path}.{key}",
        )
    return float(value)


def _require_object(item: Any, path: str) -> dict[str, Any]:
    if not isinstance(item, dict):
        raise ValidationError(f"{path} must be an object", field=path)
    return item


def _require_list(payload: dict[str, Any], key: str) -> list[Any]:
    if key not in payload:
        raise ValidationError(f"{key} is missing", field=key)
    value = payload[key]
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list", field=key)
    return value


def normalize_assignee(raw: str, path: str) -> Assignee:
    """Map a free-form trade name onto the Assignee enum."""
    key = re.sub(r"[\s-]+", "_", raw.strip().lower())
    try:
        return Assignee(key)
    except ValueError:
        allowed = ", ".join(role.value for role in Assignee)
        raise ValidationError(
            f"{path}.assignee {raw!r} is not one of: {allowed}",
            field=f"{path}.assignee",
        ) from None


def validate_analysis(payload: dict[str, Any]) -> AnalysisResult:
    """Turn a parsed reply into an AnalysisResult or raise ValidationError."""
    tasks = []
    for index, raw in enumerate(_require_list(payload, "tasks")):
        path = f"tasks[{index}]"
        item = _require_object(raw, path)
        tasks.append(
            TaskDraft(
                title=_require_str(item, "title", path, allow_empty=False),
                description=_require_str(item, "description", path, allow_empty=True),
                assignee=normalize_assignee(
                    _require_str(item, "assignee", path, allow_empty=False), path
                ),
            )
        )

    materials = []
    for index, raw in enumerate(_require_list(payload, "materials")):
        path = f"materials[{index}]"
        item = _require_object(raw, path)
        materials.append(
            MaterialDraft(
                title=_require_str(item, "title", path, allow_empty=False),
                description=_require_str(item, "description", path, allow_empty=True),
                amount=_require_positive(item, "amount", path),
            )
        )

    if "offer" not in payload:
        raise ValidationError("offer is missing", field="offer")
    offer_raw = _require_object(payload["offer"], "offer")
    offer = OfferDraft(
        title=_require_str(offer_raw, "title", "offer", allow_empty=False),
        summary=_require_str(offer_raw, "summary", "offer", allow_empty=True),
        progress_plan=_require_str(offer_raw, "progress_plan", "offer", allow_empty=True),
        total_price=_require_positive(offer_raw, "total_price", "offer"),
    )

    return AnalysisResult(tasks=tasks, materials=materials, offer=offer)


async def analyze(
    recording: Recording,
    *,
    records: RecordStore,
    engine: TextGenerationEngine,
    policy: RetryPolicy,
) -> AnalysisResult:
    """Generate and persist tasks, materials and an offer for a recording.

    Each call appends a new batch; earlier runs are left in place.

    Raises:
        PreconditionError: The recording is not completed or has no transcript.
        RetriesExhaustedError: The worker stayed unavailable for every attempt.
        FatalWorkerError: The worker rejected the request.
        ValidationError: The reply is not JSON or violates the schema.
        PersistenceError: The transactional write failed; nothing was stored.
    """
    context = {"recording_id": recording.id, "project_id": recording.project_id}

    if recording.status is not RecordingStatus.COMPLETED:
        raise PreconditionError(
            f"Recording must be completed before analysis "
            f"(status={recording.status.value})",
            recording_id=recording.id,
        )
    transcript = (recording.transcript or "").strip()
    if not transcript:
        raise PreconditionError(
            "Recording has no transcript to analyze", recording_id=recording.id
        )

    content = await run_with_retry(
        lambda: engine.complete(ANALYSIS_SYSTEM_PROMPT, transcript),
        policy,
        name=f"{engine.provider_name}.complete",
    )

    try:
        result = validate_analysis(parse_analysis(content))
    except ValidationError as exc:
        exc.recording_id = recording.id
        logger.warning(
            "Rejected analysis output: %s",
            exc,
            extra={**context, "stage": STAGE},
        )
        raise

    await records.process_recording_results(
        recording_id=recording.id,
        project_id=recording.project_id,
        tasks=[task.to_payload() for task in result.tasks],
        materials=[material.to_payload() for material in result.materials],
        offer=result.offer.to_payload(),  # type: ignore[union-attr]
    )
    logger.info(
        "Analysis stored: %d tasks, %d materials",
        len(result.tasks),
        len(result.materials),
        extra={**context, "stage": STAGE},
    )
    return result
