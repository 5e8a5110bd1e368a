"""Pipeline orchestrator for uploaded recordings.

Contains the result models returned to callers and the
PipelineOrchestrator that sequences upload -> transcription -> analysis.

Per recording the states are uploading -> processing -> completed, with
"analyzed" inferred from the existence of offer rows. Stage exceptions are
caught only here, at the boundary, and turned into a failed StageResult whose
message says whether the failure was retried and exhausted or will not be
retried. Recovery is always caller-triggered: retry_transcription() for a
recording stuck in processing, analyze() again for a failed analysis.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from recording_processor.asr.interface import SpeechToTextEngine
from recording_processor.asr.registry import get_stt_engine
from recording_processor.config import PipelineConfig
from recording_processor.events import (
    RECORDING_ANALYZED,
    RECORDING_CREATED,
    RECORDING_DELETED,
    RECORDING_FAILED,
    RECORDING_TRANSCRIBED,
    EventBus,
    RecordingEvent,
)
from recording_processor.llm.interface import TextGenerationEngine
from recording_processor.llm.registry import get_llm_engine
from recording_processor.models import AnalysisResult, Recording, RecordingStatus
from recording_processor.observability.logger import configure_logging
from recording_processor.observability.metrics import (
    StageMetrics,
    StageTimer,
    log_stage_metrics,
)
from recording_processor.stages import analysis as analysis_stage
from recording_processor.stages import transcription as transcription_stage
from recording_processor.storage.blob_store import S3BlobStore, StorageGateway
from recording_processor.storage.record_store import RecordStore
from recording_processor.utils.errors import (
    RetriesExhaustedError,
    describe_failure,
)
from recording_processor.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

UPLOAD_STAGE = "upload"


@dataclass
class StageError:
    """Details about a stage failure."""

    stage: str
    kind: Literal["fatal", "exhausted"]
    message: str
    exception_type: str
    attempts: int = 1

    @classmethod
    def from_exception(cls, stage: str, exc: Exception) -> StageError:
        exhausted = isinstance(exc, RetriesExhaustedError)
        if exhausted:
            attempts = exc.attempts
        else:
            attempts = getattr(exc, "_retry_count", 0) + 1
        return cls(
            stage=stage,
            kind="exhausted" if exhausted else "fatal",
            message=describe_failure(exc),
            exception_type=type(exc).__name__,
            attempts=attempts,
        )


@dataclass
class StageResult:
    """Outcome of one orchestrator operation."""

    status: Literal["completed", "failed"]
    stage: str
    recording_id: str | None
    recording: Recording | None = None
    analysis: AnalysisResult | None = None
    error: StageError | None = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "completed"


@dataclass
class RecordingStatusView:
    """What the UI needs to render a recording's pipeline position."""

    recording_id: str
    project_id: str
    status: RecordingStatus
    has_transcript: bool
    analyzed: bool


class PipelineOrchestrator:
    """Runs pipeline stages for recordings with injected collaborators.

    Args:
        gateway: Storage gateway for raw audio.
        records: Relational store client.
        stt_engine: Speech-to-text engine.
        llm_engine: Text-generation engine.
        retry_policy: Policy applied to both worker calls.
        events: Optional event bus notified after each stage outcome.
    """

    def __init__(
        self,
        gateway: StorageGateway,
        records: RecordStore,
        stt_engine: SpeechToTextEngine,
        llm_engine: TextGenerationEngine,
        retry_policy: RetryPolicy | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.gateway = gateway
        self.records = records
        self.stt_engine = stt_engine
        self.llm_engine = llm_engine
        self.retry_policy = retry_policy or RetryPolicy()
        self.events = events or EventBus()

    @classmethod
    def from_config(
        cls, config: PipelineConfig, events: EventBus | None = None
    ) -> PipelineOrchestrator:
        """Build an orchestrator with the real clients described by config."""
        configure_logging(config.log_level)
        store = S3BlobStore(
            endpoint_url=config.s3_endpoint,
            bucket=config.s3_bucket,
            access_key_id=config.s3_access_key_id,
            secret_access_key=config.s3_secret_access_key,
        )
        records = RecordStore(base_url=config.supabase_url, api_key=config.supabase_key)
        stt_engine = get_stt_engine(
            config.stt_provider,
            endpoint_url=config.stt_endpoint_url,
            api_key=config.stt_api_key,
            timeout=config.stt_timeout,
        )
        llm_engine = get_llm_engine(
            config.llm_provider,
            api_key=config.llm_api_key,
            model=config.llm_model,
            base_url=config.llm_base_url,
            timeout=config.llm_timeout,
        )
        return cls(
            gateway=StorageGateway(store),
            records=records,
            stt_engine=stt_engine,
            llm_engine=llm_engine,
            retry_policy=config.retry_policy,
            events=events,
        )

    async def submit(
        self,
        project_id: str,
        filename: str,
        data: bytes,
        content_type: str = "",
    ) -> StageResult:
        """Upload a file, create its recording and transcribe it.

        An upload failure creates no recording. A transcription failure
        leaves the recording in processing; use retry_transcription().
        """
        timer = StageTimer(UPLOAD_STAGE)
        try:
            with timer:
                blob_ref = await self.gateway.put(
                    project_id, filename, data, content_type
                )
                try:
                    recording = await self.records.create_recording(
                        project_id, blob_ref, name=filename
                    )
                except Exception:
                    await self._discard_blob(blob_ref, project_id)
                    raise
        except Exception as exc:
            logger.error(
                "Upload failed for '%s': %s",
                filename,
                exc,
                exc_info=True,
                extra={"project_id": project_id, "stage": UPLOAD_STAGE},
            )
            return StageResult(
                status="failed",
                stage=UPLOAD_STAGE,
                recording_id=None,
                error=StageError.from_exception(UPLOAD_STAGE, exc),
                duration_seconds=timer.duration_seconds,
            )

        self._log_metrics(
            recording, UPLOAD_STAGE, "completed", timer, input_size_bytes=len(data)
        )
        await self._publish(RECORDING_CREATED, recording)
        return await self._run_transcription(recording)

    async def retry_transcription(self, recording_id: str) -> StageResult:
        """Re-run transcription for an existing recording."""
        try:
            recording = await self.records.get_recording(recording_id)
        except Exception as exc:
            return self._lookup_failure(transcription_stage.STAGE, recording_id, exc)
        return await self._run_transcription(recording)

    async def analyze(self, recording_id: str) -> StageResult:
        """Generate a new batch of tasks, materials and an offer."""
        try:
            recording = await self.records.get_recording(recording_id)
        except Exception as exc:
            return self._lookup_failure(analysis_stage.STAGE, recording_id, exc)

        stage = analysis_stage.STAGE
        timer = StageTimer(stage)
        try:
            with timer:
                result = await analysis_stage.analyze(
                    recording,
                    records=self.records,
                    engine=self.llm_engine,
                    policy=self.retry_policy,
                )
        except Exception as exc:
            return await self._stage_failed(stage, recording, exc, timer)

        self._log_metrics(
            recording,
            stage,
            "completed",
            timer,
            tasks_created=len(result.tasks),
            materials_created=len(result.materials),
        )
        await self._publish(
            RECORDING_ANALYZED,
            recording,
            stage=stage,
            data={
                "tasks": len(result.tasks),
                "materials": len(result.materials),
                "total_price": result.offer.total_price if result.offer else None,
            },
        )
        return StageResult(
            status="completed",
            stage=stage,
            recording_id=recording.id,
            recording=recording,
            analysis=result,
            duration_seconds=timer.duration_seconds,
        )

    async def get_status(self, recording_id: str) -> RecordingStatusView:
        """Report a recording's status and whether it has been analyzed."""
        recording = await self.records.get_recording(recording_id)
        analyzed = False
        if recording.status is RecordingStatus.COMPLETED:
            analyzed = await self.records.has_offers(recording_id)
        return RecordingStatusView(
            recording_id=recording.id,
            project_id=recording.project_id,
            status=recording.status,
            has_transcript=recording.transcript is not None,
            analyzed=analyzed,
        )

    async def delete_recording(self, recording_id: str) -> None:
        """Delete a recording row, then its audio blob.

        The row goes first so a failed blob delete leaves at worst an
        orphaned object, never a row pointing at missing audio.
        """
        recording = await self.records.get_recording(recording_id)
        await self.records.delete_recording(recording_id)
        await self.gateway.delete(recording.blob_ref)
        logger.info(
            "Recording deleted",
            extra={"recording_id": recording_id, "project_id": recording.project_id},
        )
        await self._publish(RECORDING_DELETED, recording)

    async def warm_up(self) -> bool:
        """Wake the speech-to-text endpoint ahead of an upload."""
        return await self.stt_engine.warm_up()

    async def close(self) -> None:
        """Release the record store's HTTP connection pool."""
        await self.records.close()

    async def _run_transcription(self, recording: Recording) -> StageResult:
        stage = transcription_stage.STAGE
        timer = StageTimer(stage)
        try:
            with timer:
                completed = await transcription_stage.transcribe(
                    recording,
                    gateway=self.gateway,
                    records=self.records,
                    engine=self.stt_engine,
                    policy=self.retry_policy,
                )
        except Exception as exc:
            return await self._stage_failed(stage, recording, exc, timer)

        self._log_metrics(
            completed,
            stage,
            "completed",
            timer,
            output_size_chars=len(completed.transcript or ""),
        )
        await self._publish(RECORDING_TRANSCRIBED, completed, stage=stage)
        return StageResult(
            status="completed",
            stage=stage,
            recording_id=completed.id,
            recording=completed,
            duration_seconds=timer.duration_seconds,
        )

    async def _stage_failed(
        self,
        stage: str,
        recording: Recording,
        exc: Exception,
        timer: StageTimer,
    ) -> StageResult:
        error = StageError.from_exception(stage, exc)
        logger.error(
            "Stage '%s' failed (%s): %s",
            stage,
            error.kind,
            exc,
            exc_info=True,
            extra={
                "recording_id": recording.id,
                "project_id": recording.project_id,
                "stage": stage,
                "error": error.exception_type,
            },
        )
        self._log_metrics(
            recording,
            stage,
            "failed",
            timer,
            attempts=error.attempts,
            error_kind=error.kind,
            error_message=error.message,
        )
        await self._publish(
            RECORDING_FAILED,
            recording,
            stage=stage,
            error_message=error.message,
            data={"kind": error.kind, "attempts": error.attempts},
        )
        return StageResult(
            status="failed",
            stage=stage,
            recording_id=recording.id,
            recording=recording,
            error=error,
            duration_seconds=timer.duration_seconds,
        )

    async def _discard_blob(self, blob_ref: str, project_id: str) -> None:
        try:
            await self.gateway.delete(blob_ref)
        except Exception:
            logger.error(
                "Failed to remove orphaned upload %s",
                blob_ref,
                exc_info=True,
                extra={"project_id": project_id, "stage": UPLOAD_STAGE},
            )

    def _lookup_failure(
        self, stage: str, recording_id: str, exc: Exception
    ) -> StageResult:
        logger.error(
            "Could not load recording for %s: %s",
            stage,
            exc,
            extra={"recording_id": recording_id, "stage": stage},
        )
        return StageResult(
            status="failed",
            stage=stage,
            recording_id=recording_id,
            error=StageError.from_exception(stage, exc),
        )

    def _log_metrics(
        self,
        recording: Recording,
        stage: str,
        status: str,
        timer: StageTimer,
        **fields: object,
    ) -> None:
        log_stage_metrics(
            StageMetrics(
                recording_id=recording.id,
                project_id=recording.project_id,
                stage=stage,
                status=status,
                duration_seconds=timer.duration_seconds,
                **fields,  # type: ignore[arg-type]
            )
        )

    async def _publish(
        self,
        event_type: str,
        recording: Recording,
        stage: str | None = None,
        error_message: str | None = None,
        data: dict | None = None,
    ) -> None:
        await self.events.publish(
            RecordingEvent(
                type=event_type,
                recording_id=recording.id,
                project_id=recording.project_id,
                status=recording.status.value,
                stage=stage,
                error_message=error_message,
                data=data or {},
            )
        )
