"""Pipeline stages: transcription and analysis."""

from recording_processor.stages.analysis import analyze
from recording_processor.stages.transcription import transcribe

__all__ = ["analyze", "transcribe"]
