"""Transcription stage: blob -> speech-to-text worker -> completed recording.

The recording row is written exactly once, on success, with transcript and
status together. On any failure the row is left untouched (still
``processing``) and the error propagates to the caller; there is no
background retry.
"""

from __future__ import annotations

import logging
import mimetypes

from recording_processor.asr.interface import SpeechToTextEngine
from recording_processor.models import Recording
from recording_processor.storage.blob_store import StorageGateway
from recording_processor.storage.record_store import RecordStore
from recording_processor.utils.errors import PreconditionError, ValidationError
from recording_processor.utils.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

STAGE = "transcription"

_AUDIO_TYPES = {
    ".m4a": "audio/m4a",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
    ".flac": "audio/flac",
}


def audio_content_type(blob_ref: str) -> str:
    """Guess the codec MIME type from the blob ref's extension."""
    suffix = "." + blob_ref.rsplit(".", 1)[-1].lower() if "." in blob_ref else ""
    if suffix in _AUDIO_TYPES:
        return _AUDIO_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(blob_ref)
    return guessed or "application/octet-stream"


async def transcribe(
    recording: Recording,
    *,
    gateway: StorageGateway,
    records: RecordStore,
    engine: SpeechToTextEngine,
    policy: RetryPolicy,
) -> Recording:
    """Transcribe a recording's audio and mark it completed.

    Args:
        recording: Recording to transcribe. May already be completed, in
            which case the transcript is regenerated.
        gateway: Storage gateway holding the audio blob.
        records: Record store used for the single completion write.
        engine: Speech-to-text engine.
        policy: Retry policy for the worker call.

    Returns:
        The completed Recording as persisted.

    Raises:
        NotFoundError / StorageError: The blob could not be fetched.
        PreconditionError: The blob is empty.
        RetriesExhaustedError: The worker stayed unavailable for every attempt.
        FatalWorkerError: The worker rejected the request.
        ValidationError: The worker returned an empty transcript.
        PersistenceError: The completion write failed.
    """
    context = {"recording_id": recording.id, "project_id": recording.project_id}

    audio = await gateway.get(recording.blob_ref)
    if not audio:
        raise PreconditionError(
            f"Audio blob '{recording.blob_ref}' is empty",
            recording_id=recording.id,
        )

    content_type = audio_content_type(recording.blob_ref)
    logger.info(
        "Transcribing %d bytes (%s)",
        len(audio),
        content_type,
        extra={**context, "stage": STAGE},
    )

    text = await run_with_retry(
        lambda: engine.transcribe(audio, content_type),
        policy,
        name=f"{engine.provider_name}.transcribe",
    )

    transcript = text.strip()
    if not transcript:
        raise ValidationError(
            "Speech-to-text worker returned an empty transcript",
            recording_id=recording.id,
            field="text",
        )

    completed = await records.complete_recording(recording.id, transcript)
    logger.info(
        "Recording transcribed (%d characters)",
        len(transcript),
        extra={**context, "stage": STAGE},
    )
    return completed
