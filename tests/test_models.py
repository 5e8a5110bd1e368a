"""Tests for domain models and the transcript/status invariant."""

import random

import pytest

from conftest import FakeBlobStore, FakeRecordStore, ScriptedSTTEngine
from recording_processor.models import Recording, RecordingStatus
from recording_processor.stages.transcription import transcribe
from recording_processor.storage.blob_store import StorageGateway
from recording_processor.utils.errors import (
    FatalWorkerError,
    PipelineError,
    TransientWorkerError,
)
from recording_processor.utils.retry import RetryPolicy


class TestRecordingInvariant:
    """transcript is set if and only if status is completed."""

    def test_processing_without_transcript(self) -> None:
        recording = Recording(id="r", project_id="p", blob_ref="p/1-a.m4a")
        assert recording.status is RecordingStatus.PROCESSING
        assert recording.transcript is None

    def test_completed_requires_transcript(self) -> None:
        with pytest.raises(ValueError, match="if and only if"):
            Recording(
                id="r", project_id="p", blob_ref="k", status=RecordingStatus.COMPLETED
            )

    @pytest.mark.parametrize("status", ["processing", "failed"])
    def test_transcript_requires_completed(self, status: str) -> None:
        with pytest.raises(ValueError, match="if and only if"):
            Recording(id="r", project_id="p", blob_ref="k", status=status, transcript="hi")

    def test_completed_copy_sets_both_fields(self) -> None:
        recording = Recording(id="r", project_id="p", blob_ref="k")
        completed = recording.completed("fix the sink")
        assert completed.status is RecordingStatus.COMPLETED
        assert completed.transcript == "fix the sink"
        assert recording.status is RecordingStatus.PROCESSING

    def test_from_row_accepts_string_status(self) -> None:
        recording = Recording.from_row(
            {
                "id": 7,
                "project_id": 3,
                "file_path": "3/1-a.m4a",
                "status": "completed",
                "transcript": "ok",
            }
        )
        assert recording.id == "7"
        assert recording.status is RecordingStatus.COMPLETED


def _assert_invariant(records: FakeRecordStore) -> None:
    for recording in records.recordings.values():
        completed = recording.status is RecordingStatus.COMPLETED
        assert (recording.transcript is not None) == completed


@pytest.mark.parametrize("seed", range(20))
async def test_invariant_holds_over_random_transcription_sequences(
    seed: int, no_sleep
) -> None:
    """Random mixes of success, transient and fatal outcomes never break it."""
    rng = random.Random(seed)
    blob_store = FakeBlobStore()
    gateway = StorageGateway(blob_store)
    records = FakeRecordStore()
    policy = RetryPolicy(max_attempts=2, base_delay=0.0)

    outcomes = [
        lambda: "transcript text",
        lambda: TransientWorkerError("busy", status_code=503),
        lambda: FatalWorkerError("bad request", status_code=400),
        lambda: "   ",
    ]

    recordings = []
    for index in range(3):
        key = await gateway.put("proj", f"memo-{index}.m4a", b"audio")
        recordings.append(await records.create_recording("proj", key))

    for _ in range(15):
        target = rng.choice(recordings)
        script = [rng.choice(outcomes)() for _ in range(3)]
        records.fail_complete = rng.random() < 0.2
        engine = ScriptedSTTEngine(*script)
        current = await records.get_recording(target.id)
        try:
            await transcribe(
                current, gateway=gateway, records=records, engine=engine, policy=policy
            )
        except PipelineError:
            pass
        _assert_invariant(records)
