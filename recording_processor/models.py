"""Domain models for projects, recordings and analysis artifacts."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any


class RecordingStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Assignee(str, Enum):
    """Trade roles a generated task can be assigned to."""

    GENERAL_CONTRACTOR = "general_contractor"
    CARPENTER = "carpenter"
    ELECTRICIAN = "electrician"
    PLUMBER = "plumber"
    PAINTER = "painter"
    MASON = "mason"
    TILER = "tiler"
    ROOFER = "roofer"
    HVAC_TECHNICIAN = "hvac_technician"
    LANDSCAPER = "landscaper"


@dataclass(frozen=True)
class Recording:
    """An uploaded audio file and its transcription state.

    The transcript is present exactly when the status is completed;
    instances violating that are rejected at construction.
    """

    id: str
    project_id: str
    blob_ref: str
    status: RecordingStatus = RecordingStatus.PROCESSING
    transcript: str | None = None
    name: str = ""
    created_at: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, RecordingStatus):
            object.__setattr__(self, "status", RecordingStatus(self.status))
        has_transcript = self.transcript is not None
        is_completed = self.status is RecordingStatus.COMPLETED
        if has_transcript != is_completed:
            raise ValueError(
                f"Recording {self.id}: transcript must be set if and only if "
                f"status is completed (status={self.status.value}, "
                f"transcript={'set' if has_transcript else 'missing'})"
            )

    def completed(self, transcript: str) -> Recording:
        """Return the completed copy of this recording."""
        return replace(
            self, status=RecordingStatus.COMPLETED, transcript=transcript
        )

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Recording:
        return cls(
            id=str(row["id"]),
            project_id=str(row["project_id"]),
            blob_ref=row["file_path"],
            status=RecordingStatus(row.get("status", "processing")),
            transcript=row.get("transcript"),
            name=row.get("name") or "",
            created_at=row.get("created_at"),
        )


@dataclass(frozen=True)
class TaskDraft:
    title: str
    description: str
    assignee: Assignee

    def to_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "assignee": self.assignee.value,
        }


@dataclass(frozen=True)
class MaterialDraft:
    title: str
    description: str
    amount: float

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OfferDraft:
    title: str
    summary: str
    progress_plan: str
    total_price: float

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AnalysisResult:
    """Validated output of one analysis run, not yet persisted."""

    tasks: list[TaskDraft] = field(default_factory=list)
    materials: list[MaterialDraft] = field(default_factory=list)
    offer: OfferDraft | None = None
