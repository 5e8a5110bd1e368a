"""Speech-to-text engines."""

from recording_processor.asr.registry import get_stt_engine

__all__ = ["get_stt_engine"]
