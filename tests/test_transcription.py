"""Tests for the transcription stage."""

import pytest

from conftest import ScriptedSTTEngine, make_recording
from recording_processor.models import RecordingStatus
from recording_processor.stages.transcription import audio_content_type, transcribe
from recording_processor.utils.errors import (
    FatalWorkerError,
    NotFoundError,
    PersistenceError,
    PreconditionError,
    RetriesExhaustedError,
    TransientWorkerError,
    ValidationError,
)
from recording_processor.utils.retry import RetryPolicy


async def _stored_recording(gateway, records, data: bytes = b"\x00" * 120):
    key = await gateway.put("proj-1", "sink.m4a", data, "audio/m4a")
    return await records.create_recording("proj-1", key, name="sink.m4a")


class TestAudioContentType:
    @pytest.mark.parametrize(
        "blob_ref, expected",
        [
            ("p/1-a.m4a", "audio/m4a"),
            ("p/1-a.MP3", "audio/mpeg"),
            ("p/1-a.wav", "audio/wav"),
            ("p/1-a.webm", "audio/webm"),
            ("p/1-noext", "application/octet-stream"),
        ],
    )
    def test_maps_extension(self, blob_ref: str, expected: str) -> None:
        assert audio_content_type(blob_ref) == expected


class TestTranscribe:
    async def test_success_completes_recording(self, gateway, records, policy, no_sleep):
        recording = await _stored_recording(gateway, records)
        engine = ScriptedSTTEngine("fix the sink")

        result = await transcribe(
            recording, gateway=gateway, records=records, engine=engine, policy=policy
        )

        assert result.status is RecordingStatus.COMPLETED
        assert result.transcript == "fix the sink"
        assert records.recordings[recording.id] == result
        assert records.complete_calls == 1
        audio, content_type = engine.calls[0]
        assert audio == b"\x00" * 120
        assert content_type == "audio/m4a"

    async def test_transcript_is_trimmed(self, gateway, records, policy, no_sleep):
        recording = await _stored_recording(gateway, records)
        engine = ScriptedSTTEngine("  fix the sink \n")

        result = await transcribe(
            recording, gateway=gateway, records=records, engine=engine, policy=policy
        )
        assert result.transcript == "fix the sink"

    async def test_two_503s_then_success(self, gateway, records, no_sleep):
        recording = await _stored_recording(gateway, records)
        engine = ScriptedSTTEngine(
            TransientWorkerError("loading", status_code=503),
            TransientWorkerError("loading", status_code=503),
            "ok",
        )

        result = await transcribe(
            recording,
            gateway=gateway,
            records=records,
            engine=engine,
            policy=RetryPolicy(max_attempts=3, base_delay=1.0),
        )

        assert result.transcript == "ok"
        assert len(engine.calls) == 3
        assert no_sleep == [1.0, 2.0]

    async def test_exhausted_retries_leave_recording_processing(
        self, gateway, records, policy, no_sleep
    ):
        recording = await _stored_recording(gateway, records)
        engine = ScriptedSTTEngine(TransientWorkerError("busy", status_code=503))

        with pytest.raises(RetriesExhaustedError) as exc_info:
            await transcribe(
                recording, gateway=gateway, records=records, engine=engine, policy=policy
            )

        assert exc_info.value.attempts == policy.max_attempts
        assert len(engine.calls) == policy.max_attempts
        stored = records.recordings[recording.id]
        assert stored.status is RecordingStatus.PROCESSING
        assert stored.transcript is None
        assert records.complete_calls == 0

    async def test_fatal_worker_error_not_retried(
        self, gateway, records, policy, no_sleep
    ):
        recording = await _stored_recording(gateway, records)
        engine = ScriptedSTTEngine(FatalWorkerError("forbidden", status_code=403))

        with pytest.raises(FatalWorkerError):
            await transcribe(
                recording, gateway=gateway, records=records, engine=engine, policy=policy
            )

        assert len(engine.calls) == 1
        assert no_sleep == []
        assert records.recordings[recording.id].status is RecordingStatus.PROCESSING

    async def test_missing_blob_is_fatal(self, gateway, records, policy):
        recording = records.add(make_recording(blob_ref="proj-1/0-gone.m4a"))
        engine = ScriptedSTTEngine("never")

        with pytest.raises(NotFoundError):
            await transcribe(
                recording, gateway=gateway, records=records, engine=engine, policy=policy
            )
        assert engine.calls == []

    async def test_zero_length_audio_rejected_before_worker(
        self, gateway, records, blob_store, policy
    ):
        blob_store.objects["proj-1/1-empty.m4a"] = b""
        recording = records.add(make_recording(blob_ref="proj-1/1-empty.m4a"))
        engine = ScriptedSTTEngine("never")

        with pytest.raises(PreconditionError, match="empty"):
            await transcribe(
                recording, gateway=gateway, records=records, engine=engine, policy=policy
            )
        assert engine.calls == []

    async def test_empty_transcript_rejected(self, gateway, records, policy, no_sleep):
        recording = await _stored_recording(gateway, records)
        engine = ScriptedSTTEngine("   ")

        with pytest.raises(ValidationError):
            await transcribe(
                recording, gateway=gateway, records=records, engine=engine, policy=policy
            )
        assert records.recordings[recording.id].transcript is None

    async def test_completion_write_failure_leaves_processing(
        self, gateway, records, policy, no_sleep
    ):
        recording = await _stored_recording(gateway, records)
        records.fail_complete = True

        with pytest.raises(PersistenceError):
            await transcribe(
                recording,
                gateway=gateway,
                records=records,
                engine=ScriptedSTTEngine("fix the sink"),
                policy=policy,
            )

        stored = records.recordings[recording.id]
        assert stored.status is RecordingStatus.PROCESSING
        assert stored.transcript is None

    async def test_rerun_on_completed_recording_overwrites(
        self, gateway, records, policy, no_sleep
    ):
        recording = await _stored_recording(gateway, records)
        first = await transcribe(
            recording,
            gateway=gateway,
            records=records,
            engine=ScriptedSTTEngine("first pass"),
            policy=policy,
        )

        second = await transcribe(
            first,
            gateway=gateway,
            records=records,
            engine=ScriptedSTTEngine("second pass"),
            policy=policy,
        )

        assert second.transcript == "second pass"
        assert records.complete_calls == 2
