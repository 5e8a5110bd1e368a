"""Shared fakes and fixtures for stage and orchestrator tests."""

from __future__ import annotations

import itertools
from collections.abc import Iterator
from typing import Any
from unittest.mock import patch

import pytest

from recording_processor.asr.interface import SpeechToTextEngine
from recording_processor.llm.interface import TextGenerationEngine
from recording_processor.models import Recording, RecordingStatus
from recording_processor.storage.blob_store import StorageGateway
from recording_processor.utils.errors import (
    NotFoundError,
    PersistenceError,
    StorageError,
)
from recording_processor.utils.retry import RetryPolicy


class FakeBlobStore:
    """Dict-backed BlobStore."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail_puts = False

    def put_object(self, key: str, data: bytes, content_type: str = "") -> None:
        if self.fail_puts:
            raise StorageError("quota exceeded", operation="put_object")
        self.objects[key] = data
        self.content_types[key] = content_type

    def fetch_object(self, key: str) -> bytes:
        if key not in self.objects:
            raise NotFoundError(f"missing {key}", operation="fetch_object", key=key)
        return self.objects[key]

    def delete_object(self, key: str) -> None:
        self.objects.pop(key, None)


class FakeRecordStore:
    """In-memory RecordStore with transactional analysis writes.

    ``fail_rpc_at`` names the table ("tasks", "materials" or "offers") whose
    insert raises inside process_recording_results; rows staged before the
    failure are discarded, as a database rollback would.
    """

    def __init__(self) -> None:
        self.recordings: dict[str, Recording] = {}
        self.tasks: list[dict[str, Any]] = []
        self.materials: list[dict[str, Any]] = []
        self.offers: list[dict[str, Any]] = []
        self.rpc_calls = 0
        self.complete_calls = 0
        self.fail_rpc_at: str | None = None
        self.fail_complete = False
        self.fail_create = False
        self.closed = False
        self._ids = itertools.count(1)

    async def create_recording(
        self, project_id: str, blob_ref: str, name: str = ""
    ) -> Recording:
        if self.fail_create:
            raise PersistenceError("insert rejected", operation="create_recording")
        recording = Recording(
            id=f"rec-{next(self._ids)}",
            project_id=project_id,
            blob_ref=blob_ref,
            name=name,
        )
        self.recordings[recording.id] = recording
        return recording

    def add(self, recording: Recording) -> Recording:
        self.recordings[recording.id] = recording
        return recording

    async def get_recording(self, recording_id: str) -> Recording:
        if recording_id not in self.recordings:
            raise NotFoundError(
                f"Recording {recording_id} does not exist",
                recording_id=recording_id,
            )
        return self.recordings[recording_id]

    async def complete_recording(self, recording_id: str, transcript: str) -> Recording:
        self.complete_calls += 1
        if self.fail_complete:
            raise PersistenceError("update rejected", operation="complete_recording")
        recording = self.recordings[recording_id].completed(transcript)
        self.recordings[recording_id] = recording
        return recording

    async def delete_recording(self, recording_id: str) -> None:
        self.recordings.pop(recording_id, None)

    async def process_recording_results(
        self,
        recording_id: str,
        project_id: str,
        tasks: list[dict[str, Any]],
        materials: list[dict[str, Any]],
        offer: dict[str, Any],
    ) -> None:
        self.rpc_calls += 1
        staged: dict[str, list[dict[str, Any]]] = {
            "tasks": list(self.tasks),
            "materials": list(self.materials),
            "offers": list(self.offers),
        }
        rows = {"tasks": tasks, "materials": materials, "offers": [offer]}
        for table in ("tasks", "materials", "offers"):
            if self.fail_rpc_at == table:
                raise PersistenceError(
                    f"insert into {table} failed", operation="process_recording_results"
                )
            for row in rows[table]:
                staged[table].append(
                    {**row, "recording_id": recording_id, "project_id": project_id}
                )
        self.tasks = staged["tasks"]
        self.materials = staged["materials"]
        self.offers = staged["offers"]

    async def has_offers(self, recording_id: str) -> bool:
        return any(offer["recording_id"] == recording_id for offer in self.offers)

    async def close(self) -> None:
        self.closed = True

    def rows_for(self, recording_id: str) -> int:
        return sum(
            1
            for row in itertools.chain(self.tasks, self.materials, self.offers)
            if row["recording_id"] == recording_id
        )


class ScriptedSTTEngine(SpeechToTextEngine):
    """Engine that replays a script of results/exceptions, one per call."""

    provider_name = "scripted-stt"

    def __init__(self, *script: str | Exception) -> None:
        self.script = list(script)
        self.calls: list[tuple[bytes, str]] = []
        self.warmed_up = False

    async def transcribe(self, audio: bytes, content_type: str) -> str:
        self.calls.append((audio, content_type))
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        return step

    async def warm_up(self) -> bool:
        self.warmed_up = True
        return True


class ScriptedLLMEngine(TextGenerationEngine):
    provider_name = "scripted-llm"

    def __init__(self, *script: str | Exception) -> None:
        self.script = list(script)
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system_prompt: str, user_content: str) -> str:
        self.calls.append((system_prompt, user_content))
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        return step


VALID_ANALYSIS = """{
  "tasks": [
    {"title": "Replace sink trap", "description": "Leaking under kitchen sink", "assignee": "plumber"},
    {"title": "Patch wall", "description": "Behind the sink", "assignee": "Painter"}
  ],
  "materials": [
    {"title": "P-trap", "description": "40mm PVC", "amount": 1},
    {"title": "Filler", "description": "Interior", "amount": 0.5}
  ],
  "offer": {
    "title": "Kitchen sink repair",
    "summary": "Fix the leak and restore the wall",
    "progress_plan": "Day 1 plumbing, day 2 wall",
    "total_price": 480.0
  }
}"""


def make_recording(
    recording_id: str = "rec-1",
    project_id: str = "proj-1",
    status: RecordingStatus = RecordingStatus.PROCESSING,
    transcript: str | None = None,
    blob_ref: str = "proj-1/1700000000000000-3f9a1c2e-walkthrough.m4a",
) -> Recording:
    return Recording(
        id=recording_id,
        project_id=project_id,
        blob_ref=blob_ref,
        status=status,
        transcript=transcript,
    )


@pytest.fixture
def no_sleep() -> Iterator[list[float]]:
    """Replace the retry backoff sleep and record requested delays."""
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    with patch("recording_processor.utils.retry.asyncio.sleep", side_effect=fake_sleep):
        yield delays


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.5, max_delay=4.0)


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def gateway(blob_store: FakeBlobStore) -> StorageGateway:
    return StorageGateway(blob_store)


@pytest.fixture
def records() -> FakeRecordStore:
    return FakeRecordStore()
