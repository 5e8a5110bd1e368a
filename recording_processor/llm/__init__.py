"""Text-generation engines."""

from recording_processor.llm.registry import get_llm_engine

__all__ = ["get_llm_engine"]
